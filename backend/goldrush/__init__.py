from flask import Flask, g, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_login import LoginManager
from flask_cors import CORS
from flask_migrate import Migrate
from flask_socketio import SocketIO
import click
from config import Config

db = SQLAlchemy()
login_manager = LoginManager()
migrate = Migrate()
socketio = SocketIO(async_mode=None)

SOCKET_NAMESPACE = '/ws'


def create_app(config_class=Config):
    flask_app = Flask(__name__)
    flask_app.config.from_object(config_class)

    allowed_origins = list(flask_app.config.get('CORS_ORIGINS') or [])

    db.init_app(flask_app)
    login_manager.init_app(flask_app)
    migrate.init_app(flask_app, db)
    CORS(flask_app, supports_credentials=True, origins=allowed_origins)

    # Initialize Socket.IO after app is created
    socketio.init_app(flask_app, cors_allowed_origins=allowed_origins)

    # Import and register blueprints here
    from goldrush.main import main
    flask_app.register_blueprint(main)

    from goldrush.api.team import team
    flask_app.register_blueprint(team, url_prefix='/api/team')

    from goldrush.api.game import game
    flask_app.register_blueprint(game, url_prefix='/api/game')

    from goldrush.api.admin import admin
    flask_app.register_blueprint(admin, url_prefix='/api/admin')

    from goldrush.socketio_events import register_socketio_handlers
    register_socketio_handlers()

    # Bearer-token identity for every request
    from goldrush.auth import load_user_from_request

    login_manager.request_loader(load_user_from_request)

    @login_manager.unauthorized_handler
    def unauthorized():
        if g.get('verified_email'):
            return jsonify({'message': 'User not registered'}), 403
        return jsonify({'message': 'Authentication required'}), 401

    @click.command('init-game')
    def init_game_command():
        """Creates tables and the round-state row if they are missing."""
        from goldrush.services.rounds import get_or_create_game_state
        with flask_app.app_context():
            db.create_all()
            state = get_or_create_game_state()
            db.session.commit()
            print(f'Game state ready: round {state.current_round}/{state.total_rounds} ({state.game_status})')

    @click.command('create-admin')
    @click.argument('email', required=False)
    def create_admin_command(email):
        """Registers (or promotes) the master admin account."""
        from goldrush.models import User, ROLE_MASTER_ADMIN
        email = (email or flask_app.config.get('MASTER_ADMIN_EMAIL') or '').strip().lower()
        if not email:
            raise click.UsageError('Pass an email or set MASTER_ADMIN_EMAIL')
        with flask_app.app_context():
            user = User.query.filter_by(email=email).first()
            if user:
                user.role = ROLE_MASTER_ADMIN
            else:
                db.session.add(User(email=email, role=ROLE_MASTER_ADMIN))
            db.session.commit()
            print(f'Master admin ready: {email}')

    flask_app.cli.add_command(init_game_command)
    flask_app.cli.add_command(create_admin_command)

    return flask_app
