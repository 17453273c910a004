import os
import sys
import pytest
from flask import g

# Ensure the backend root (containing the `goldrush` package) is on sys.path
CURRENT_DIR = os.path.dirname(__file__)
BACKEND_ROOT = os.path.abspath(os.path.join(CURRENT_DIR, '..'))
if BACKEND_ROOT not in sys.path:
    sys.path.insert(0, BACKEND_ROOT)

from goldrush import create_app, db, socketio, SOCKET_NAMESPACE
from goldrush.services import identity
from goldrush.services.scheduler import cancel_all_sabotage_expiries


class TestConfig:
    TESTING = True
    SECRET_KEY = os.environ.get('SECRET_KEY', 'test-secret')
    SQLALCHEMY_DATABASE_URI = 'sqlite://'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ORIGINS = ('http://localhost:3000',)
    FIREBASE_PROJECT_ID = 'goldrush-test'
    ALLOWED_EMAIL_DOMAINS = ()
    DEFAULT_TOTAL_ROUNDS = 3
    DEFAULT_ROUND_DURATION_SEC = 600
    DEFAULT_SABOTAGE_DURATION_SEC = 60
    DEFAULT_SABOTAGE_COOLDOWN_SEC = 120
    DEFAULT_SABOTAGE_SAME_TARGET_COOLDOWN_SEC = 300
    TEAM_MAX_MEMBERS = 4
    ASSIGNMENT_CARD_COUNT = 20
    DISQUALIFIED_SCORE = -9999
    ENABLE_SCHEDULER_IN_TESTS = False


@pytest.fixture(autouse=True)
def fake_identity(monkeypatch):
    """Bearer tokens in tests are the email itself; 'bad' tokens are rejected."""
    def _verify(token):
        if not token or '@' not in token:
            raise identity.InvalidCredential('Invalid token')
        return token.strip().lower()

    monkeypatch.setattr(identity, 'verify_id_token', _verify)


@pytest.fixture()
def flask_app():
    application = create_app(TestConfig)
    with application.app_context():
        # Ensure models are imported so tables are created
        import goldrush.models  # noqa: F401
        db.create_all()
        yield application
        cancel_all_sabotage_expiries()
        db.session.remove()
        db.drop_all()


@pytest.fixture()
def client(flask_app):
    # Requests reuse the fixture's app context, so g would carry the previous caller
    @flask_app.before_request
    def reset_request_identity():
        g.pop('_login_user', None)
        g.pop('verified_email', None)

    return flask_app.test_client()


@pytest.fixture()
def sio_client(flask_app):
    test_client = socketio.test_client(
        flask_app,
        flask_test_client=flask_app.test_client(),
        namespace=SOCKET_NAMESPACE,
    )
    yield test_client
    try:
        test_client.disconnect(namespace=SOCKET_NAMESPACE)
    except Exception:
        pass


def auth(email):
    return {'Authorization': f'Bearer {email}'}


@pytest.fixture()
def game(flask_app):
    """Builds game fixtures directly in the database."""
    from goldrush.models import GoldBar, Location, Team, TeamMember, User, ROLE_MASTER_ADMIN, ROLE_TEAM_LEAD, ROLE_MEMBER

    class Builder:
        def __init__(self):
            self._locations = 0
            self._teams = 0
            self._bars = 0

        def admin(self, email='admin@example.com'):
            user = User(email=email, role=ROLE_MASTER_ADMIN)
            db.session.add(user)
            db.session.commit()
            return user

        def user(self, email, role=ROLE_MEMBER):
            user = User(email=email, role=role)
            db.session.add(user)
            db.session.commit()
            return user

        def location(self, name=None):
            self._locations += 1
            loc = Location(location_name=name or f'Location {self._locations}')
            db.session.add(loc)
            db.session.commit()
            return loc

        def team(self, team_type='innocent', name=None, lead_email=None):
            self._teams += 1
            lead = self.user(lead_email or f'lead{self._teams}@example.com', role=ROLE_TEAM_LEAD)
            t = Team(
                team_name=name or f'Team {self._teams}',
                team_code=f'CODE{self._teams:04d}',
                team_type=team_type,
                team_lead_id=lead.id,
                total_score=0,
            )
            db.session.add(t)
            db.session.flush()
            db.session.add(TeamMember(team_id=t.id, user_id=lead.id))
            db.session.commit()
            return t

        def gold_bar(self, points=10, clue_text=None, qr_code=None):
            self._bars += 1
            here = self.location()
            there = self.location()
            bar = GoldBar(
                qr_code=qr_code or f'secret-{self._bars}',
                points=points,
                location_id=here.id,
                clue_text=clue_text or f'Clue {self._bars}',
                clue_location_id=there.id,
            )
            db.session.add(bar)
            db.session.commit()
            return bar

    return Builder()


def point_team_at(team_id, gold_bar):
    """Force a team's current target (assignment is random otherwise)."""
    from goldrush.models import TeamClue
    row = db.session.get(TeamClue, team_id)
    if row is None:
        row = TeamClue(team_id=team_id)
        db.session.add(row)
    row.current_clue_text = gold_bar.clue_text
    row.current_clue_location_id = gold_bar.clue_location_id
    row.next_gold_bar_id = gold_bar.id
    db.session.commit()
