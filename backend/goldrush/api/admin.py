import random
import uuid

from flask import Blueprint, current_app, jsonify, request
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from goldrush import db
from goldrush.auth import admin_required
from goldrush.models import (
    GoldBar, Location, Sabotage, ScanHistory, Team, TeamClue, TeamMember, User,
    FACTION_INNOCENT, FACTION_TRAITOR, ROLE_MEMBER, ROLE_TEAM_LEAD,
)
from goldrush.services import analytics, rounds
from goldrush.services import sabotage as sabotage_svc
from goldrush.services.identity import email_domain_allowed
from goldrush.services.leaderboard import broadcast_standings, set_visibility, standings
from goldrush.services.outcomes import status_code
from goldrush.services.qr import render_data_url
from goldrush.services.scheduler import cancel_sabotage_expiry

admin = Blueprint('admin', __name__)


def _respond(outcome):
    return jsonify(outcome), status_code(outcome)


# ---- Locations ----

@admin.route('/locations', methods=['POST'])
@admin_required
def create_location():
    data = request.get_json(silent=True) or {}
    name = (data.get('location_name') or '').strip()
    if not name:
        return jsonify({'message': 'location_name is required'}), 400
    location = Location(location_name=name, description=data.get('description'))
    db.session.add(location)
    db.session.commit()
    return jsonify(location.to_dict()), 201


@admin.route('/locations', methods=['GET'])
@admin_required
def list_locations():
    return jsonify([loc.to_dict() for loc in Location.query.order_by(Location.location_name).all()])


@admin.route('/locations/<int:location_id>', methods=['PUT'])
@admin_required
def update_location(location_id):
    location = db.session.get(Location, location_id)
    if not location:
        return jsonify({'message': 'Location not found'}), 404
    data = request.get_json(silent=True) or {}
    if data.get('location_name'):
        location.location_name = data['location_name'].strip()
    if 'description' in data:
        location.description = data.get('description')
    db.session.commit()
    return jsonify(location.to_dict())


@admin.route('/locations/<int:location_id>', methods=['DELETE'])
@admin_required
def delete_location(location_id):
    location = db.session.get(Location, location_id)
    if not location:
        return jsonify({'message': 'Location not found'}), 404
    in_use = GoldBar.query.filter(
        db.or_(GoldBar.location_id == location_id, GoldBar.clue_location_id == location_id)
    ).count()
    if in_use:
        return jsonify({'message': 'Cannot delete location that is used by gold bars'}), 400
    db.session.delete(location)
    db.session.commit()
    return jsonify({'message': 'Location deleted successfully'})


# ---- Gold bars ----

@admin.route('/gold-bars', methods=['POST'])
@admin_required
def create_gold_bar():
    data = request.get_json(silent=True) or {}
    try:
        points = int(data.get('points'))
        location_id = int(data.get('location_id'))
        clue_location_id = int(data.get('clue_location_id'))
    except (TypeError, ValueError):
        return jsonify({'message': 'points, location_id and clue_location_id are required'}), 400
    clue_text = (data.get('clue_text') or '').strip()
    if not clue_text:
        return jsonify({'message': 'clue_text is required'}), 400
    if location_id == clue_location_id:
        return jsonify({'message': 'Gold bar location and clue location must be different'}), 400
    if not db.session.get(Location, location_id) or not db.session.get(Location, clue_location_id):
        return jsonify({'message': 'Location not found'}), 404

    bar = GoldBar(
        qr_code=str(uuid.uuid4()),
        points=points,
        location_id=location_id,
        clue_text=clue_text,
        clue_location_id=clue_location_id,
    )
    db.session.add(bar)
    db.session.commit()
    payload = bar.to_dict()
    payload['qr_code_image'] = render_data_url(bar.qr_code)
    return jsonify(payload), 201


@admin.route('/gold-bars', methods=['GET'])
@admin_required
def list_gold_bars():
    bars = GoldBar.query.order_by(GoldBar.created_at.desc(), GoldBar.id.desc()).all()
    return jsonify([bar.to_dict() for bar in bars])


@admin.route('/gold-bars/<int:gold_bar_id>/qr', methods=['GET'])
@admin_required
def gold_bar_qr(gold_bar_id):
    bar = db.session.get(GoldBar, gold_bar_id)
    if not bar:
        return jsonify({'message': 'Gold bar not found'}), 404
    return jsonify({'qr_code_image': render_data_url(bar.qr_code)})


@admin.route('/gold-bars/<int:gold_bar_id>', methods=['DELETE'])
@admin_required
def delete_gold_bar(gold_bar_id):
    bar = db.session.get(GoldBar, gold_bar_id)
    if not bar:
        return jsonify({'message': 'Gold bar not found'}), 404
    if bar.is_scanned:
        return jsonify({'message': 'Cannot delete a gold bar that has been scanned'}), 400
    # Teams pointed at this bar lose their clue until the next assignment
    TeamClue.query.filter_by(next_gold_bar_id=gold_bar_id).delete(synchronize_session=False)
    ScanHistory.query.filter_by(gold_bar_id=gold_bar_id).delete(synchronize_session=False)
    db.session.delete(bar)
    db.session.commit()
    return jsonify({'message': 'Gold bar deleted successfully'})


# ---- Sabotage monitor ----

@admin.route('/sabotages', methods=['GET'])
@admin_required
def list_sabotages():
    try:
        sabotage_svc.expire_stale_sabotages()
    except SQLAlchemyError as exc:
        current_app.logger.warning(f"[sabotage-sweep] skipped error={exc!r}")
    return jsonify(sabotage_svc.history())


@admin.route('/sabotages/<int:sabotage_id>/overrule', methods=['POST'])
@admin_required
def overrule_sabotage(sabotage_id):
    return _respond(sabotage_svc.overrule(sabotage_id))


@admin.route('/analytics', methods=['GET'])
@admin_required
def get_analytics():
    return jsonify(analytics.dashboard())


# ---- Team leads & participants ----

@admin.route('/team-leads', methods=['POST'])
@admin_required
def create_team_lead():
    data = request.get_json(silent=True) or {}
    email = (data.get('email') or '').strip().lower()
    if not email or '@' not in email:
        return jsonify({'message': 'A valid email is required'}), 400
    if not email_domain_allowed(email):
        return jsonify({'message': 'Email domain not allowed'}), 400
    user = User(email=email, role=ROLE_TEAM_LEAD)
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        return jsonify({'message': 'User already exists'}), 400
    return jsonify(user.to_dict()), 201


@admin.route('/team-leads', methods=['GET'])
@admin_required
def list_team_leads():
    leads = User.query.filter_by(role=ROLE_TEAM_LEAD).order_by(User.created_at.desc(), User.id.desc()).all()
    result = []
    for lead in leads:
        data = lead.to_dict()
        led = Team.query.filter_by(team_lead_id=lead.id).first()
        data.update({
            'team_name': led.team_name if led else None,
            'team_code': led.team_code if led else None,
            'team_type': led.team_type if led else None,
        })
        result.append(data)
    return jsonify(result)


@admin.route('/team-leads/<int:user_id>', methods=['DELETE'])
@admin_required
def demote_team_lead(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'message': 'User not found'}), 404
    user.role = ROLE_MEMBER
    db.session.commit()
    return jsonify({'message': 'Team Lead demoted to member successfully'})


@admin.route('/participants', methods=['GET'])
@admin_required
def list_participants():
    users = (
        User.query.filter(User.role.in_([ROLE_MEMBER, ROLE_TEAM_LEAD]))
        .order_by(User.created_at.desc(), User.id.desc())
        .all()
    )
    return jsonify([u.to_dict() for u in users])


@admin.route('/participants/<int:user_id>/promote', methods=['PUT'])
@admin_required
def promote_participant(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'message': 'User not found'}), 404
    user.role = ROLE_TEAM_LEAD
    db.session.commit()
    return jsonify({'message': 'Participant promoted to Team Lead'})


@admin.route('/participants/<int:user_id>', methods=['DELETE'])
@admin_required
def remove_participant(user_id):
    user = db.session.get(User, user_id)
    if not user:
        return jsonify({'message': 'User not found'}), 404
    led = Team.query.filter_by(team_lead_id=user_id).first()
    if led:
        return jsonify({
            'message': f"Cannot remove user. They are the Team Lead of '{led.team_name}'. "
                       "Delete the team or promote another member first."
        }), 400
    try:
        TeamMember.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        ScanHistory.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.delete(user)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[remove-participant] user={user_id} error={exc!r}")
        return jsonify({'message': 'Error removing participant'}), 503
    return jsonify({'message': 'Participant removed from game'})


# ---- Teams ----

@admin.route('/teams/detailed', methods=['GET'])
@admin_required
def detailed_teams():
    teams = Team.query.order_by(Team.total_score.desc(), Team.team_name.asc()).all()
    result = []
    for t in teams:
        data = t.to_dict(include_members=True)
        data['team_lead_email'] = t.team_lead.email if t.team_lead else None
        result.append(data)
    return jsonify(result)


@admin.route('/teams/by-type', methods=['GET'])
@admin_required
def teams_by_type():
    grouped = {'innocents': [], 'traitors': []}
    for t in Team.query.order_by(Team.team_name.asc()).all():
        entry = {'id': t.id, 'team_name': t.team_name, 'team_code': t.team_code, 'total_score': t.total_score}
        if t.team_type == FACTION_INNOCENT:
            grouped['innocents'].append(entry)
        elif t.team_type == FACTION_TRAITOR:
            grouped['traitors'].append(entry)
    return jsonify(grouped)


@admin.route('/teams/<int:team_id>', methods=['DELETE'])
@admin_required
def delete_team(team_id):
    """
    Deletes a team and everything hanging off it. Bars it collected become
    scannable again.
    """
    target = db.session.get(Team, team_id)
    if not target:
        return jsonify({'message': 'Team not found'}), 404
    sabotage_ids = [
        sid for (sid,) in db.session.query(Sabotage.id).filter(
            db.or_(Sabotage.traitor_team_id == team_id, Sabotage.target_team_id == team_id)
        ).all()
    ]
    try:
        TeamMember.query.filter_by(team_id=team_id).delete(synchronize_session=False)
        TeamClue.query.filter_by(team_id=team_id).delete(synchronize_session=False)
        ScanHistory.query.filter_by(team_id=team_id).delete(synchronize_session=False)
        Sabotage.query.filter(Sabotage.id.in_(sabotage_ids)).delete(synchronize_session=False)
        GoldBar.query.filter_by(scanned_by_team_id=team_id).update(
            {'is_scanned': False, 'scanned_by_team_id': None, 'scanned_at': None},
            synchronize_session=False,
        )
        db.session.delete(target)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[delete-team] team={team_id} error={exc!r}")
        return jsonify({'message': 'Error deleting team'}), 503
    for sid in sabotage_ids:
        cancel_sabotage_expiry(sid)
    current_app.logger.info(f"[delete-team] team={team_id}")
    broadcast_standings()
    return jsonify({'message': 'Team deleted successfully'})


@admin.route('/teams/<int:team_id>/members', methods=['POST'])
@admin_required
def add_team_member(team_id):
    target = db.session.get(Team, team_id)
    if not target:
        return jsonify({'message': 'Team not found'}), 404
    data = request.get_json(silent=True) or {}
    user = User.query.filter_by(email=(data.get('email') or '').strip().lower()).first()
    if not user:
        return jsonify({'message': 'User not found'}), 404
    if user.role not in (ROLE_MEMBER, ROLE_TEAM_LEAD):
        return jsonify({'message': 'User is not a regular member'}), 400
    if user.team_id is not None:
        return jsonify({'message': 'User is already in a team'}), 400
    max_members = int(current_app.config.get('TEAM_MAX_MEMBERS', 4))
    if len(target.members) >= max_members:
        return jsonify({'message': f'Team is full (max {max_members} members)'}), 400
    db.session.add(TeamMember(team_id=team_id, user_id=user.id))
    db.session.commit()
    return jsonify({'message': 'Member added successfully'})


@admin.route('/teams/<int:team_id>/members/<int:user_id>', methods=['DELETE'])
@admin_required
def remove_team_member(team_id, user_id):
    target = db.session.get(Team, team_id)
    if target and target.team_lead_id == user_id:
        return jsonify({'message': 'Cannot remove Team Lead. Promote another member first or delete the team.'}), 400
    removed = TeamMember.query.filter_by(team_id=team_id, user_id=user_id).delete(synchronize_session=False)
    if not removed:
        db.session.rollback()
        return jsonify({'message': 'Member not found in this team'}), 404
    db.session.commit()
    return jsonify({'message': 'Member removed from team'})


@admin.route('/teams/<int:team_id>/disqualify', methods=['PUT'])
@admin_required
def disqualify_team(team_id):
    target = db.session.get(Team, team_id)
    if not target:
        return jsonify({'message': 'Team not found'}), 404
    score = int(current_app.config.get('DISQUALIFIED_SCORE', -9999))
    target.total_score = score
    db.session.commit()
    current_app.logger.info(f"[disqualify] team={team_id} score={score}")
    broadcast_standings()
    return jsonify({'message': f'Team disqualified (Score set to {score})'})


@admin.route('/generate-cards', methods=['POST'])
@admin_required
def generate_cards():
    data = request.get_json(silent=True) or {}
    try:
        num_innocents = int(data.get('num_innocents'))
        num_traitors = int(data.get('num_traitors'))
    except (TypeError, ValueError):
        return jsonify({'message': 'num_innocents and num_traitors are required'}), 400
    expected = int(current_app.config.get('ASSIGNMENT_CARD_COUNT', 20))
    if num_innocents < 0 or num_traitors < 0 or num_innocents + num_traitors != expected:
        return jsonify({'message': f'Total cards must be {expected} (innocents + traitors)'}), 400

    cards = []
    for team_type, count in ((FACTION_INNOCENT, num_innocents), (FACTION_TRAITOR, num_traitors)):
        for _ in range(count):
            card_id = str(uuid.uuid4())
            cards.append({
                'card_id': card_id,
                'team_type': team_type,
                'qr_code_image': render_data_url({'type': 'team_assignment', 'team_type': team_type, 'card_id': card_id}),
            })
    random.shuffle(cards)
    return jsonify(cards)


# ---- Leaderboard ----

@admin.route('/leaderboard', methods=['GET'])
@admin_required
def admin_leaderboard():
    return jsonify(standings())


@admin.route('/leaderboard/publish', methods=['PUT'])
@admin_required
def publish_leaderboard():
    data = request.get_json(silent=True) or {}
    if 'start_publish' not in data:
        return jsonify({'message': 'start_publish is required'}), 400
    return _respond(set_visibility(bool(data['start_publish'])))


# ---- Game settings & round control ----

@admin.route('/game-settings', methods=['GET'])
@admin_required
def get_game_settings():
    try:
        state = rounds.get_state()
    except SQLAlchemyError:
        return jsonify({'message': 'Error fetching game settings'}), 503
    return jsonify(state.to_dict())


@admin.route('/game-settings', methods=['PUT'])
@admin_required
def update_game_settings():
    return _respond(rounds.update_settings(request.get_json(silent=True) or {}))


@admin.route('/start-round', methods=['POST'])
@admin_required
def start_round():
    return _respond(rounds.start_round())


@admin.route('/end-round', methods=['POST'])
@admin_required
def end_round():
    return _respond(rounds.end_round())


@admin.route('/reset-game', methods=['POST'])
@admin_required
def reset_game():
    data = request.get_json(silent=True) or {}
    if data.get('confirm') is not True:
        return jsonify({'message': 'Resetting wipes all progress; send {"confirm": true} to proceed'}), 400
    return _respond(rounds.reset_game())
