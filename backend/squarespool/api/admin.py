from functools import wraps

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required

from squarespool.services.pool import game_state as game_svc
from squarespool.services.pool.grid import (
    confirm_payment,
    launch_grid,
    list_payments,
    pool_summary,
    reassign_square,
)
from squarespool.services.pool.payouts import list_settings, update_settings
from squarespool.services.pool.props import create_prop, grade_prop, list_props, set_prop_status, update_prop
from squarespool.services.pool.scorefeed import sync_scores

admin = Blueprint('admin', __name__)


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if not current_user.is_admin:
            return jsonify({'error': 'Admin access required'}), 403
        return view(*args, **kwargs)
    return wrapper


@admin.route('/summary', methods=['GET'])
@admin_required
def summary():
    return jsonify(pool_summary())


@admin.route('/launch', methods=['POST'])
@admin_required
def launch():
    data = request.get_json(silent=True) or {}
    result = launch_grid(force=bool(data.get('force')))
    return jsonify(result)


@admin.route('/squares/<int:square_id>', methods=['POST'])
@admin_required
def update_square(square_id):
    data = request.get_json(silent=True) or {}
    if 'owner_id' not in data:
        return jsonify({'error': 'owner_id is required (null frees the square)'}), 400
    owner_id = data['owner_id']
    if owner_id is not None:
        try:
            owner_id = int(owner_id)
        except (TypeError, ValueError):
            return jsonify({'error': 'owner_id must be an integer'}), 400
    square = reassign_square(square_id, owner_id)
    return jsonify(square.to_dict())


@admin.route('/payments', methods=['GET'])
@admin_required
def payments():
    return jsonify({'payments': [p.to_dict() for p in list_payments()]})


@admin.route('/payments/<int:payment_id>/confirm', methods=['POST'])
@admin_required
def confirm(payment_id):
    return jsonify(confirm_payment(payment_id).to_dict())


@admin.route('/settings', methods=['GET'])
@admin_required
def get_settings():
    return jsonify(list_settings())


@admin.route('/settings', methods=['PUT'])
@admin_required
def put_settings():
    return jsonify(update_settings(request.get_json(silent=True) or {}))


@admin.route('/game/start', methods=['POST'])
@admin_required
def start():
    return jsonify(game_svc.start_game(updated_by=current_user.id).to_dict())


@admin.route('/game/score', methods=['POST'])
@admin_required
def update_score():
    data = dict(request.get_json(silent=True) or {})
    expected_version = data.pop('expected_version', None)
    state = game_svc.update_game_state(data, expected_version=expected_version, updated_by=current_user.id)
    return jsonify(state.to_dict())


@admin.route('/game/end-quarter', methods=['POST'])
@admin_required
def end_quarter():
    data = request.get_json(silent=True) or {}
    outcome = game_svc.end_quarter(expected_quarter=data.get('expected_quarter'), updated_by=current_user.id)
    return jsonify(outcome.to_dict())


@admin.route('/game/resume', methods=['POST'])
@admin_required
def resume():
    return jsonify(game_svc.resume_play(updated_by=current_user.id).to_dict())


@admin.route('/game/reset', methods=['POST'])
@admin_required
def reset():
    return jsonify(game_svc.reset_game(updated_by=current_user.id).to_dict())


@admin.route('/game/sync', methods=['POST'])
@admin_required
def sync():
    state = sync_scores()
    if state is None:
        current_app.logger.info("[score-feed] manual sync found the feed unavailable")
        return jsonify({'error': 'Score feed unavailable', 'game_state': game_svc.get_game_state().to_dict()}), 502
    return jsonify(state.to_dict())


@admin.route('/props', methods=['GET'])
@admin_required
def all_props():
    return jsonify({'props': [p.to_dict() for p in list_props(include_drafts=True)]})


@admin.route('/props', methods=['POST'])
@admin_required
def new_prop():
    prop = create_prop(request.get_json(silent=True) or {})
    return jsonify(prop.to_dict()), 201


@admin.route('/props/<int:prop_id>', methods=['PATCH'])
@admin_required
def edit_prop(prop_id):
    return jsonify(update_prop(prop_id, request.get_json(silent=True) or {}).to_dict())


@admin.route('/props/<int:prop_id>/status', methods=['POST'])
@admin_required
def prop_status(prop_id):
    data = request.get_json(silent=True) or {}
    return jsonify(set_prop_status(prop_id, data.get('status')).to_dict())


@admin.route('/props/<int:prop_id>/grade', methods=['POST'])
@admin_required
def grade(prop_id):
    data = request.get_json(silent=True) or {}
    prop = grade_prop(
        prop_id,
        correct_answer=data.get('correct_answer'),
        actual_value=data.get('actual_value'),
        result_notes=data.get('result_notes'),
        graded_by=current_user.id,
    )
    return jsonify(prop.to_dict())
