import os
import sys
import pytest

# Ensure the backend root (containing the `taprace` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from taprace import create_app, db, socketio
from taprace.identity import Identity
from taprace.store import MemoryStore
from taprace.services.race import RoomRegistry, StatsAggregator


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    WTF_CSRF_ENABLED = False
    BCRYPT_LOG_ROUNDS = 4
    STORE_BACKEND = 'sql'
    MAX_PLAYERS = 5
    MIN_PLAYERS = 2
    TAP_STEP = 2
    LEADERBOARD_LIMIT = 10
    DEFAULT_DISPLAY_NAME = 'Nameless'


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import taprace.models  # noqa: F401
        db.create_all()
    # Each test request pushes its own app context, so Flask-Login's
    # cached user in `g` never leaks between clients
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    return flask_app.test_client()


def register(test_client, email, display_name=None, password='password'):
    res = test_client.post('/register', json={
        'email': email,
        'password': password,
        'display_name': display_name,
    })
    assert res.status_code == 201, res.get_json()
    return res.get_json()['user']


@pytest.fixture()
def player_clients(flask_app):
    """Logged-in test clients for Ann, Ben and Cat (one cookie jar each)."""
    clients = {}
    for name in ('Ann', 'Ben', 'Cat'):
        test_client = flask_app.test_client()
        user = register(test_client, f'{name.lower()}@example.com', name)
        clients[name] = (test_client, user)
    return clients


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


# ---- Store-level fixtures (no Flask) ----

@pytest.fixture()
def store():
    return MemoryStore()


@pytest.fixture()
def stats(store):
    return StatsAggregator(store)


@pytest.fixture()
def registry(store, stats):
    return RoomRegistry(store, stats=stats)


@pytest.fixture()
def ann():
    return Identity(uid='u1', display_name='Ann')


@pytest.fixture()
def ben():
    return Identity(uid='u2', display_name='Ben')


@pytest.fixture()
def register_user():
    return register
