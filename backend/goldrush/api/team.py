import json
import uuid

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from goldrush import db
from goldrush.auth import current_team_or_404, team_lead_required
from goldrush.models import Team, TeamMember, FACTIONS, STATUS_IN_PROGRESS
from goldrush.services.clues import assign_random_target, current_clue_row
from goldrush.services.outcomes import status_code
from goldrush.services.qr import render_data_url
from goldrush.services.rounds import get_state
from goldrush.services.scanning import submit_scan

team = Blueprint('team', __name__)

NO_CLUE_MESSAGE = 'No clue available yet. Wait for the round to start.'


def _parse_json_payload(raw):
    if isinstance(raw, dict):
        return raw
    try:
        data = json.loads(raw or '')
    except (TypeError, ValueError):
        return None
    return data if isinstance(data, dict) else None


def _join_payload(t: Team) -> dict:
    return {'type': 'team_join', 'team_id': t.id, 'team_code': t.team_code}


@team.route('/scan-assignment', methods=['POST'])
@team_lead_required
def scan_assignment():
    """
    Reads a faction assignment card for a team lead who has no team yet.
    """
    data = request.get_json(silent=True) or {}
    card = _parse_json_payload(data.get('card_data'))
    if not card or card.get('type') != 'team_assignment' or card.get('team_type') not in FACTIONS:
        return jsonify({'message': 'Invalid card type'}), 400
    if Team.query.filter_by(team_lead_id=current_user.id).first():
        return jsonify({'message': 'You already have a team'}), 400
    return jsonify({'team_type': card['team_type'], 'card_id': card.get('card_id')})


@team.route('/create', methods=['POST'])
@team_lead_required
def create_team():
    data = request.get_json(silent=True) or {}
    team_name = (data.get('team_name') or '').strip()
    team_type = data.get('team_type')

    if team_type not in FACTIONS:
        return jsonify({'message': 'Invalid team type'}), 400
    if not team_name:
        return jsonify({'message': 'Team name is required'}), 400
    if Team.query.filter_by(team_lead_id=current_user.id).first():
        return jsonify({'message': 'You already have a team'}), 400
    if current_user.team_id is not None:
        return jsonify({'message': 'You are already in a team'}), 400

    new_team = Team(
        team_name=team_name,
        team_code=uuid.uuid4().hex[:8].upper(),
        team_type=team_type,
        team_lead_id=current_user.id,
        total_score=0,
    )
    db.session.add(new_team)
    try:
        db.session.flush()
        db.session.add(TeamMember(team_id=new_team.id, user_id=current_user.id))
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'message': 'Team name or code already exists'}), 400

    current_app.logger.info(f"[team-create] team={new_team.id} type={team_type} lead={current_user.id}")
    payload = new_team.to_dict()
    payload['qr_code_image'] = render_data_url(_join_payload(new_team))
    return jsonify(payload), 201


@team.route('/join', methods=['POST'])
@login_required
def join_team():
    """
    Joins a team by its code or by the payload of its join QR.
    """
    data = request.get_json(silent=True) or {}
    if data.get('qr_data'):
        info = _parse_json_payload(data['qr_data'])
        if not info or info.get('type') != 'team_join':
            return jsonify({'message': 'Invalid QR code'}), 400
        target = db.session.get(Team, info.get('team_id')) if info.get('team_id') else None
    elif data.get('team_code'):
        target = Team.query.filter_by(team_code=data['team_code'].strip().upper()).first()
    else:
        return jsonify({'message': 'Team code or QR data required'}), 400

    if target is None:
        return jsonify({'message': 'Team not found'}), 404
    if current_user.team_id is not None:
        return jsonify({'message': 'You are already in a team'}), 400

    max_members = int(current_app.config.get('TEAM_MAX_MEMBERS', 4))
    if TeamMember.query.filter_by(team_id=target.id).count() >= max_members:
        return jsonify({'message': f'Team is full (max {max_members} members)'}), 400

    db.session.add(TeamMember(team_id=target.id, user_id=current_user.id))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'message': 'You are already in a team'}), 400

    current_app.logger.info(f"[team-join] team={target.id} user={current_user.id}")
    return jsonify({
        'team_id': target.id,
        'team_name': target.team_name,
        'team_type': target.team_type,
        'team_code': target.team_code,
    })


@team.route('/my-team', methods=['GET'])
@login_required
def my_team():
    team_id, error = current_team_or_404()
    if error:
        return error
    return jsonify(db.session.get(Team, team_id).to_dict(include_members=True))


@team.route('/members', methods=['GET'])
@login_required
def members():
    team_id, error = current_team_or_404()
    if error:
        return error
    roster = db.session.get(Team, team_id).to_dict(include_members=True)['members']
    roster.sort(key=lambda m: not m['is_lead'])
    return jsonify(roster)


@team.route('/current-clue', methods=['GET'])
@login_required
def current_clue():
    team_id, error = current_team_or_404()
    if error:
        return error
    try:
        row = current_clue_row(team_id)
        if row is None and get_state().game_status == STATUS_IN_PROGRESS:
            # Teams formed mid-round get their first target on first read
            row = assign_random_target(team_id)
            db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[current-clue] team={team_id} error={exc!r}")
        return jsonify({'message': 'Error fetching clue'}), 503
    if row is None:
        return jsonify({'message': NO_CLUE_MESSAGE})
    return jsonify(row.to_dict())


@team.route('/scan-gold-bar', methods=['POST'])
@login_required
def scan_gold_bar():
    team_id, error = current_team_or_404()
    if error:
        return error
    data = request.get_json(silent=True) or {}
    outcome = submit_scan(team_id, data.get('qr_code'), user_id=current_user.id)
    return jsonify(outcome), status_code(outcome)
