from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
bcrypt = Bcrypt()
login_manager = LoginManager()
migrate = Migrate()
allowed_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
    "http://localhost:5173",
    "http://127.0.0.1:5173",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)

def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)
    flask_app.logger.setLevel(flask_app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    from squarespool.errors import PoolError

    @flask_app.errorhandler(PoolError)
    def handle_pool_error(exc):
        if exc.status_code >= 500:
            flask_app.logger.error(f"[error] {exc.__class__.__name__}: {exc.message}")
        return jsonify(exc.to_dict()), exc.status_code

    # Import and register blueprints here
    from squarespool.main import main
    flask_app.register_blueprint(main)

    from squarespool.api.squares import squares
    from squarespool.api.game import game
    from squarespool.api.props import props
    from squarespool.api.admin import admin
    from squarespool.api.webhooks import webhooks
    flask_app.register_blueprint(squares, url_prefix='/api/squares')
    flask_app.register_blueprint(game, url_prefix='/api/game')
    flask_app.register_blueprint(props, url_prefix='/api/props')
    flask_app.register_blueprint(admin, url_prefix='/api/admin')
    flask_app.register_blueprint(webhooks, url_prefix='/api/webhooks')

    from squarespool.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from squarespool.services.pool.notifications import build_notifier
    flask_app.extensions['pool_notifier'] = build_notifier(flask_app.config.get('NOTIFIER_BACKEND', 'log'))

    # Flask-Login user loader
    from squarespool.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Login required'}), 401

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        from squarespool.services.pool.seed import seed_pool
        with flask_app.app_context():
            db.drop_all()
            db.create_all()
            seed_pool(flask_app.config, with_admin=True)
            print('Database has been reset and seeded!')

    @click.command('sync-scores')
    def sync_scores_command():
        """Pulls the scoreboard feed once into the game state."""
        from squarespool.services.pool.scorefeed import sync_scores
        with flask_app.app_context():
            state = sync_scores()
            if state is None:
                print('Score feed unavailable; game state unchanged.')
            else:
                print(f'AFC {state.afc_score} - NFC {state.nfc_score} (Q{state.quarter}, {state.phase.value})')

    flask_app.cli.add_command(db_reset_command)
    flask_app.cli.add_command(sync_scores_command)

    from squarespool.services.pool.scheduler import start_score_polling
    start_score_polling(flask_app)

    return flask_app
