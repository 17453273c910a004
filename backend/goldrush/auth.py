from functools import wraps

from flask import current_app, g, jsonify
from flask_login import current_user, login_required

from goldrush.models import User, ROLE_MASTER_ADMIN, ROLE_TEAM_LEAD
from goldrush.services import identity


def verified_email(request):
    """Email behind the request's bearer token, or None.

    The verifier is looked up on the module at call time so it can be
    replaced (tests patch ``identity.verify_id_token``).
    """
    token = identity.bearer_token(request.headers.get('Authorization'))
    if not token:
        return None
    try:
        return identity.verify_id_token(token)
    except identity.InvalidCredential as exc:
        current_app.logger.info(f"[auth] rejected token: {exc}")
        return None


def load_user_from_request(request):
    """Flask-Login request loader: bearer token -> registered ``User``."""
    email = verified_email(request)
    g.verified_email = email
    if not email:
        return None
    return User.query.filter_by(email=email).first()


def admin_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if current_user.role != ROLE_MASTER_ADMIN:
            return jsonify({'message': 'Access denied. Master admin only.'}), 403
        return view(*args, **kwargs)
    return wrapper


def team_lead_required(view):
    @wraps(view)
    @login_required
    def wrapper(*args, **kwargs):
        if current_user.role != ROLE_TEAM_LEAD:
            return jsonify({'message': 'Access denied. Team lead only.'}), 403
        return view(*args, **kwargs)
    return wrapper


def current_team_or_404():
    """(team_id, None) for the caller's team, or (None, error response)."""
    team_id = current_user.team_id
    if team_id is None:
        return None, (jsonify({'message': 'You are not in a team'}), 404)
    return team_id, None
