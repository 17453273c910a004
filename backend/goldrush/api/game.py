from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required
from sqlalchemy.exc import SQLAlchemyError

from goldrush import db
from goldrush.auth import current_team_or_404
from goldrush.models import Team, FACTION_TRAITOR
from goldrush.services import sabotage as sabotage_svc
from goldrush.services.leaderboard import public_standings
from goldrush.services.outcomes import status_code
from goldrush.services.rounds import get_state

game = Blueprint('game', __name__)


def _traitor_team_or_error(action: str):
    team_id, error = current_team_or_404()
    if error:
        return None, error
    if db.session.get(Team, team_id).team_type != FACTION_TRAITOR:
        return None, (jsonify({'message': f'Only traitors can {action}'}), 403)
    return team_id, None


@game.route('/state', methods=['GET'])
def get_game_state():
    try:
        state = get_state()
    except SQLAlchemyError:
        return jsonify({'message': 'Error fetching game state'}), 503
    return jsonify(state.to_dict())


@game.route('/leaderboard', methods=['GET'])
def get_leaderboard():
    return jsonify(public_standings())


@game.route('/sabotage', methods=['POST'])
@login_required
def sabotage():
    team_id, error = current_team_or_404()
    if error:
        return error
    data = request.get_json(silent=True) or {}
    target_team_id = data.get('target_team_id')
    try:
        target_team_id = int(target_team_id)
    except (TypeError, ValueError):
        return jsonify({'message': 'target_team_id is required'}), 400
    outcome = sabotage_svc.attempt_sabotage(team_id, target_team_id)
    return jsonify(outcome), status_code(outcome)


@game.route('/innocent-teams', methods=['GET'])
@login_required
def innocent_teams():
    _, error = _traitor_team_or_error('view innocent teams')
    if error:
        return error
    return jsonify(sabotage_svc.innocent_teams_overview())


@game.route('/sabotage-status', methods=['GET'])
@login_required
def sabotage_status():
    team_id, error = current_team_or_404()
    if error:
        return error
    try:
        sabotage_svc.expire_stale_sabotages()
    except SQLAlchemyError as exc:
        current_app.logger.warning(f"[sabotage-sweep] skipped error={exc!r}")
    return jsonify(sabotage_svc.sabotage_status(team_id))


@game.route('/sabotage-cooldown', methods=['GET'])
@login_required
def sabotage_cooldown():
    team_id, error = _traitor_team_or_error('check sabotage cooldown')
    if error:
        return error
    remaining = sabotage_svc.cooldown_remaining(team_id)
    return jsonify({'can_sabotage': remaining == 0, 'remaining_time': remaining})
