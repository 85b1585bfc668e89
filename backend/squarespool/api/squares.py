from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from squarespool.services.pool.grid import list_squares, pool_summary, purchase_squares, squares_for_user

squares = Blueprint('squares', __name__)


@squares.route('', methods=['GET'])
def get_grid():
    return jsonify({'squares': [sq.to_dict() for sq in list_squares()]})


@squares.route('/summary', methods=['GET'])
def get_summary():
    return jsonify(pool_summary())


@squares.route('/mine', methods=['GET'])
@login_required
def get_my_squares():
    return jsonify({'squares': [sq.to_dict() for sq in squares_for_user(current_user)]})


@squares.route('/purchase', methods=['POST'])
@login_required
def purchase():
    data = request.get_json(silent=True) or {}
    claimed = purchase_squares(current_user, data.get('square_ids'))
    return jsonify({'squares': [sq.to_dict() for sq in claimed]}), 201
