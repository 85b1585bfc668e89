from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required

from squarespool.services.pool.props import answers_for_user, list_props, props_leaderboard, submit_answer

props = Blueprint('props', __name__)


@props.route('', methods=['GET'])
def get_props():
    return jsonify({'props': [p.to_dict() for p in list_props()]})


@props.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    return jsonify({'leaderboard': props_leaderboard()})


@props.route('/mine', methods=['GET'])
@login_required
def get_my_answers():
    return jsonify({'answers': [a.to_dict() for a in answers_for_user(current_user)]})


@props.route('/<int:prop_id>/answer', methods=['POST'])
@login_required
def answer_prop(prop_id):
    data = request.get_json(silent=True) or {}
    answer = submit_answer(current_user, prop_id, data.get('answer'))
    return jsonify(answer.to_dict()), 201
