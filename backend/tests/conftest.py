import os
import sys
import pytest
from flask import g

# Ensure the backend root (containing the `squarespool` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from config import Config
from squarespool import create_app, db, socketio
from squarespool.models import GridSquare, SquareStatus, User, utcnow
from squarespool.services.pool.notifications import Notifier
from squarespool.services.pool.seed import seed_pool

# Row labels equal the row index; column labels run 9..0
ROW_DIGITS = list(range(10))
COL_DIGITS = list(range(9, -1, -1))
WEBHOOK_SECRET = 'whsec-test'


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret'
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    BCRYPT_LOG_ROUNDS = 4
    LOG_LEVEL = 'DEBUG'
    SQUARE_PRICE = '50'
    PRIZE_Q1 = '1000'
    PRIZE_Q2 = '1000'
    PRIZE_Q3 = '1000'
    PRIZE_Q4 = '2000'
    REQUIRE_FULL_GRID_TO_LAUNCH = True
    PAYMENT_WEBHOOK_SECRET = WEBHOOK_SECRET
    SCORE_FEED_URL = 'https://scores.test/scoreboard'
    SCORE_FEED_GAME_ID = None
    SCORE_FEED_RETRIES = 0
    SCORE_FEED_BACKOFF_SEC = 0
    SCORE_POLL_INTERVAL_SEC = 0
    NOTIFIER_BACKEND = 'log'
    ADMIN_EMAIL = 'admin@example.com'
    ADMIN_PASSWORD = 'adminpass'


class FakeRng:
    """Stands in for random: each shuffle() lays out the next queued order."""

    def __init__(self, *orders):
        self._orders = [list(o) for o in orders]

    def shuffle(self, seq):
        seq[:] = self._orders.pop(0)


class RecordingNotifier(Notifier):
    def __init__(self, fail_for=()):
        self.emails = []
        self.sms = []
        self.fail_for = set(fail_for)

    def send_email(self, to, subject, body, priority=False):
        if to in self.fail_for:
            raise RuntimeError(f'mail relay refused {to}')
        self.emails.append({'to': to, 'subject': subject, 'body': body, 'priority': priority})

    def send_sms(self, to, body):
        if to in self.fail_for:
            raise RuntimeError(f'sms gateway refused {to}')
        self.sms.append({'to': to, 'body': body})


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)

    @application.before_request
    def _forget_cached_user():
        # requests share the fixture app context, so g outlives a single request
        g.pop('_login_user', None)

    with application.app_context():
        # Ensure models are imported so tables are created
        import squarespool.models  # noqa: F401
        db.create_all()
        seed_pool(application.config, with_admin=True)
        yield application
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


@pytest.fixture()
def notifier(flask_app):
    recorder = RecordingNotifier()
    flask_app.extensions['pool_notifier'] = recorder
    return recorder


def make_user(email, name=None, password='password', is_admin=False, **fields):
    user = User(email=email, name=name or email.split('@')[0], is_admin=is_admin, **fields)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return user


def login(test_client, email, password='password'):
    res = test_client.post('/login', json={'email': email, 'password': password})
    assert res.status_code == 200, res.get_json()
    return test_client


@pytest.fixture()
def admin_client(flask_app):
    return login(flask_app.test_client(), TestConfig.ADMIN_EMAIL, TestConfig.ADMIN_PASSWORD)


@pytest.fixture()
def alice(flask_app):
    return make_user('alice@example.com', 'Alice', phone='+15550001', notify_sms=True)


@pytest.fixture()
def user_client(flask_app, alice):
    return login(flask_app.test_client(), alice.email)


def square_at(row_index, col_index):
    return GridSquare.query.filter_by(row_index=row_index, col_index=col_index).one()


def sell_all_squares(owner, except_cells=()):
    """Mark the grid sold to ``owner`` without going through checkout."""
    for square in GridSquare.query.all():
        if (square.row_index, square.col_index) in except_cells:
            continue
        square.owner_id = owner.id
        square.status = SquareStatus.CONFIRMED
        square.paid_at = utcnow()
    db.session.commit()


@pytest.fixture()
def launched_grid(flask_app):
    """Fully sold grid with ROW_DIGITS / COL_DIGITS drawn; every square owned by a filler user."""
    from squarespool.services.pool.grid import launch_grid

    filler = make_user('filler@example.com', 'Filler', notify_quarter_wins=False)
    sell_all_squares(filler)
    launch_grid(rng=FakeRng(ROW_DIGITS, COL_DIGITS))
    return filler


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace='/ws'
    )
    yield test_client
    try:
        test_client.disconnect(namespace='/ws')
    except Exception:
        pass
