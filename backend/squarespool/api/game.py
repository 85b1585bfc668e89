from flask import Blueprint, jsonify

from squarespool.services.pool.game_state import current_leader, get_game_state, list_winners, score_history

game = Blueprint('game', __name__)


@game.route('/state', methods=['GET'])
def get_state():
    return jsonify(get_game_state().to_dict())


@game.route('/leader', methods=['GET'])
def get_leader():
    return jsonify(current_leader())


@game.route('/winners', methods=['GET'])
def get_winners():
    return jsonify({'winners': [w.to_dict() for w in list_winners()]})


@game.route('/history', methods=['GET'])
def get_history():
    return jsonify({'history': [row.to_dict() for row in score_history()]})
