from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError

from goldrush import db
from goldrush.auth import verified_email
from goldrush.models import User, ROLE_MEMBER

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Gold Rush game server!'})


@main.route('/health')
def health():
    return jsonify({'status': 'ok'})


@main.route('/api/auth/verify', methods=['POST'])
@login_required
def verify():
    """Returns the caller's role so the client can route to the right view."""
    return jsonify({
        'id': current_user.id,
        'email': current_user.email,
        'role': current_user.role,
        'team_id': current_user.team_id,
    })


@main.route('/api/auth/register-member', methods=['POST'])
def register_member():
    """
    Registers the caller as a member. Idempotent: an existing account is
    returned unchanged.
    """
    email = verified_email(request)
    if not email:
        return jsonify({'message': 'Invalid or missing token'}), 401

    user = User.query.filter_by(email=email).first()
    if user:
        return jsonify(user.to_dict())

    user = User(email=email, role=ROLE_MEMBER)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent registration of the same email
        db.session.rollback()
        user = User.query.filter_by(email=email).first()
    current_app.logger.info(f"[register-member] email={email}")
    return jsonify(user.to_dict()), 201
