from flask import Flask, current_app, jsonify
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
    "http://localhost:5173",
    "http://127.0.0.1:5173",
    "http://localhost:5174",
    "http://127.0.0.1:5174",
]
socketio = SocketIO(cors_allowed_origins=allowed_origins, async_mode=None)


def get_store():
    return current_app.extensions['taprace_store']


def get_registry():
    return current_app.extensions['taprace_registry']


def get_stats():
    return current_app.extensions['taprace_stats']


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    db.init_app(flask_app)
    bcrypt.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Shared state store and the race services on top of it
    from taprace.store import MemoryStore, SqlStore
    from taprace.services.race import RoomRegistry, StatsAggregator

    backend = flask_app.config.get('STORE_BACKEND', 'sql')
    store = MemoryStore() if backend == 'memory' else SqlStore(db)
    stats = StatsAggregator(store, default_limit=int(flask_app.config.get('LEADERBOARD_LIMIT', 10)))
    registry = RoomRegistry(
        store,
        stats=stats,
        max_players=int(flask_app.config.get('MAX_PLAYERS', 5)),
        min_players=int(flask_app.config.get('MIN_PLAYERS', 2)),
        tap_step=int(flask_app.config.get('TAP_STEP', 2)),
    )
    flask_app.extensions['taprace_store'] = store
    flask_app.extensions['taprace_stats'] = stats
    flask_app.extensions['taprace_registry'] = registry
    flask_app.logger.info(f"[store] backend={backend}")

    from taprace.main import main
    flask_app.register_blueprint(main)

    from taprace.api.rooms import rooms
    flask_app.register_blueprint(rooms, url_prefix='/api/rooms')

    from taprace.api.stats import stats as stats_blueprint
    flask_app.register_blueprint(stats_blueprint, url_prefix='/api/stats')

    from taprace.socketio_events import register_socketio_handlers
    register_socketio_handlers(testing=flask_app.config.get('TESTING', False))

    from taprace.models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        from taprace.errors import AuthenticationFailed
        err = AuthenticationFailed('Login required')
        return jsonify(err.to_dict()), err.status_code

    @click.command('db-reset')
    def db_reset_command():
        """Drops, recreates, and seeds the database."""
        with flask_app.app_context():
            db.drop_all()
            db.create_all()

            # Seed users
            for name in ['racer1', 'racer2', 'racer3']:
                user = User(email=f'{name}@example.com', display_name=name)
                user.set_password('password')
                db.session.add(user)

            db.session.commit()
            print('Database has been reset and seeded!')

    flask_app.cli.add_command(db_reset_command)

    return flask_app
