from flask import current_app

from squarespool import db
from squarespool.models import GameState, User
from .grid import seed_grid
from .payouts import seed_settings


def seed_pool(config, with_admin: bool = False) -> None:
    """Create the grid, the game state row, default settings and (optionally) an admin."""
    try:
        added = seed_grid()
        if GameState.query.first() is None:
            db.session.add(GameState())
        seed_settings(config)
        if with_admin and config.get('ADMIN_EMAIL'):
            email = config['ADMIN_EMAIL'].strip().lower()
            if User.query.filter_by(email=email).first() is None:
                admin = User(email=email, name='Admin', is_admin=True, notify_quarter_wins=False)
                admin.set_password(config.get('ADMIN_PASSWORD') or 'password')
                db.session.add(admin)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info(f"[seed] grid squares added={added}")
