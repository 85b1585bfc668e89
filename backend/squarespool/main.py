from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from squarespool import db
from squarespool.models import User

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the squares pool server!'})


@main.route('/register', methods=['POST', 'OPTIONS'])
def register():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    password = data.get('password')
    if not email or not password:
        return jsonify({'success': False, 'message': 'Email and password are required'}), 400

    user = User.query.filter_by(email=email).first()
    if user and user.password_hash:
        return jsonify({'success': False, 'message': 'Email already registered'}), 400
    if user is None:
        # Buyers created by a payment already have a row; they just set a password
        user = User(email=email)
        db.session.add(user)
    user.name = (data.get('name') or user.name or email.split('@')[0]).strip()[:80]
    if data.get('phone'):
        user.phone = data['phone']
    user.set_password(password)
    db.session.commit()
    login_user(user)
    return jsonify({'success': True, 'user': user.to_dict()}), 201


@main.route('/login', methods=['POST', 'OPTIONS'])
def login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(email=(data.get('email') or '').strip().lower()).first()
    if user and user.check_password(data.get('password') or ''):
        login_user(user, remember=True)
        return jsonify({'success': True, 'user': user.to_dict()})
    return jsonify({'success': False, 'message': 'Invalid credentials'}), 401


@main.route('/check_login', methods=['GET', 'OPTIONS'])
def check_login():
    if request.method == 'OPTIONS':
        return jsonify({'status': 'ok'}), 200

    @login_required
    def protected_check():
        return jsonify({'success': True, 'user': current_user.to_dict()})

    return protected_check()


@main.route('/logout', methods=['POST', 'OPTIONS'])
@login_required
def logout():
    logout_user()
    return jsonify({'success': True})


@main.route('/me/preferences', methods=['POST'])
@login_required
def update_preferences():
    data = request.get_json(silent=True) or {}
    for field in ('notify_quarter_wins', 'notify_sms'):
        if field in data:
            setattr(current_user, field, bool(data[field]))
    if 'phone' in data:
        current_user.phone = data['phone'] or None
    db.session.commit()
    return jsonify({'success': True, 'user': current_user.to_dict()})
