"""Sabotage coordination.

A traitor team may disable an innocent team's scoring for
``sabotage_duration`` seconds. Two cooldowns gate new attempts: one on the
acting team's most recent sabotage of anyone, and a longer one on the same
(traitor, target) pair. Whether a sabotage is in effect is always derived
from ``is_active AND sabotage_end_time > now``; the stored flag is only a
cache that the deferred expiry, an overrule or a lazy sweep clears.

Lifecycle of a row: created (active) -> ended, via natural expiry or an
administrative overrule. Both transitions are conditional on the flag still
being set, so whichever lands first wins and the other is a no-op.
"""
import math
from datetime import timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from goldrush import db
from goldrush.locks import lock_teams, with_sabotage_lock
from goldrush.models import (
    Sabotage, Team, FACTION_INNOCENT, FACTION_TRAITOR, STATUS_IN_PROGRESS,
    isoformat, utcnow,
)
from .broadcast import emit_global, emit_team
from .outcomes import accepted, declined, NOT_FOUND, REJECTED, CONFLICT, UNAVAILABLE, TRY_AGAIN
from .rounds import get_state
from .scheduler import cancel_sabotage_expiry, schedule_sabotage_expiry


def active_sabotage_for(team_id: int, now=None) -> Optional[Sabotage]:
    now = now or utcnow()
    return (
        Sabotage.query
        .filter(
            Sabotage.target_team_id == team_id,
            Sabotage.is_active.is_(True),
            Sabotage.sabotage_end_time > now,
        )
        .order_by(Sabotage.sabotage_end_time.desc())
        .first()
    )


def is_active(team_id: int) -> bool:
    return active_sabotage_for(team_id) is not None


def sabotage_status(team_id: int) -> dict:
    sabotage = active_sabotage_for(team_id)
    if sabotage is None:
        return {'is_sabotaged': False}
    return {'is_sabotaged': True, 'sabotage_end_time': isoformat(sabotage.sabotage_end_time)}


def _seconds_since_last(traitor_team_id: int, target_team_id: Optional[int] = None, now=None) -> Optional[float]:
    query = Sabotage.query.filter(Sabotage.traitor_team_id == traitor_team_id)
    if target_team_id is not None:
        query = query.filter(Sabotage.target_team_id == target_team_id)
    last = query.order_by(Sabotage.sabotage_start_time.desc()).first()
    if last is None:
        return None
    return ((now or utcnow()) - last.sabotage_start_time).total_seconds()


def _remaining(cooldown: int, elapsed: Optional[float]) -> int:
    if elapsed is None:
        return 0
    return max(0, int(math.ceil(cooldown - elapsed)))


def cooldown_remaining(traitor_team_id: int, now=None) -> int:
    """Seconds until the team may sabotage anyone again."""
    state = get_state()
    return _remaining(int(state.sabotage_cooldown), _seconds_since_last(traitor_team_id, now=now))


def attempt_sabotage(traitor_team_id: int, target_team_id: int):
    try:
        traitor = db.session.get(Team, traitor_team_id)
        if traitor is None:
            return declined(NOT_FOUND, 'Your team was not found')
        target = db.session.get(Team, target_team_id)
        if target is None:
            return declined(NOT_FOUND, 'Target team not found')
        if traitor.team_type != FACTION_TRAITOR:
            return declined(REJECTED, 'Only traitors can sabotage')
        if target.team_type != FACTION_INNOCENT:
            return declined(REJECTED, 'Can only sabotage innocent teams')

        state = get_state()
        if state.game_status != STATUS_IN_PROGRESS:
            return declined(REJECTED, 'Game round is not in progress')
        duration = int(state.sabotage_duration)
        cooldown = int(state.sabotage_cooldown)
        same_target_cooldown = int(state.sabotage_same_person_cooldown)

        # Serialize per team pair: cooldown and exclusivity checks see committed rows only
        lock_teams([traitor_team_id, target_team_id])
        now = utcnow()

        wait = _remaining(cooldown, _seconds_since_last(traitor_team_id, now=now))
        if wait:
            db.session.rollback()
            return declined(REJECTED, f'You must wait {wait} seconds before sabotaging again', remaining_time=wait)

        wait = _remaining(same_target_cooldown, _seconds_since_last(traitor_team_id, target_team_id, now=now))
        if wait:
            db.session.rollback()
            return declined(
                REJECTED, f'You must wait {wait} seconds before sabotaging this team again', remaining_time=wait
            )

        if active_sabotage_for(target_team_id, now=now) is not None:
            db.session.rollback()
            return declined(CONFLICT, 'This team is already sabotaged')

        sabotage = Sabotage(
            traitor_team_id=traitor_team_id,
            target_team_id=target_team_id,
            sabotage_start_time=now,
            sabotage_end_time=now + timedelta(seconds=duration),
            is_active=True,
        )
        db.session.add(sabotage)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[sabotage] traitor={traitor_team_id} target={target_team_id} error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)

    end_time = isoformat(sabotage.sabotage_end_time)
    current_app.logger.info(
        f"[sabotage] id={sabotage.id} traitor={traitor_team_id} target={target_team_id} until={end_time}"
    )
    emit_team(target_team_id, 'sabotaged', {
        'sabotage_id': sabotage.id,
        'sabotage_end_time': end_time,
        'duration': duration,
    })
    emit_global('sabotage_started_global', {
        'target_team_id': target_team_id,
        'traitor_team_id': traitor_team_id,
        'duration': duration,
        'sabotage_end_time': end_time,
    })
    schedule_sabotage_expiry(
        current_app._get_current_object(), sabotage.id, sabotage.sabotage_start_time, duration
    )
    return accepted(
        message='Sabotage successful',
        sabotage_id=sabotage.id,
        sabotage_end_time=end_time,
        duration=duration,
    )


def _deactivate(sabotage_id: int, end_now: bool = False) -> bool:
    """Clear the active flag if still set; True when this call did it."""
    values = {'is_active': False}
    if end_now:
        values['sabotage_end_time'] = utcnow()
    result = db.session.execute(
        update(Sabotage)
        .where(Sabotage.id == sabotage_id, Sabotage.is_active.is_(True))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def expire_sabotage(sabotage_id: int) -> bool:
    """Natural end of a sabotage. Safe to call any number of times."""
    sabotage = db.session.get(Sabotage, sabotage_id)
    if sabotage is None:
        return False
    target_team_id = sabotage.target_team_id
    try:
        ended = _deactivate(sabotage_id)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    cancel_sabotage_expiry(sabotage_id)
    if ended:
        current_app.logger.info(f"[sabotage-end] id={sabotage_id} target={target_team_id}")
        emit_team(target_team_id, 'sabotage_ended', {'sabotage_id': sabotage_id})
        emit_global('sabotage_ended_global', {'target_team_id': target_team_id, 'sabotage_id': sabotage_id})
    return ended


def expire_stale_sabotages() -> int:
    """Clear flags whose end time has passed (covers timers lost to a restart)."""
    stale_ids = [
        sid for (sid,) in db.session.query(Sabotage.id)
        .filter(Sabotage.is_active.is_(True), Sabotage.sabotage_end_time <= utcnow())
        .all()
    ]
    return sum(1 for sid in stale_ids if expire_sabotage(sid))


def overrule(sabotage_id: int):
    """Administrative override: end an active sabotage now."""
    try:
        sabotage = with_sabotage_lock(sabotage_id).first()
        if sabotage is None:
            return declined(NOT_FOUND, 'Sabotage not found')
        target_team_id = sabotage.target_team_id
        if not sabotage.is_in_effect():
            db.session.rollback()
            # Already over; let the natural-expiry path settle any stale flag
            expire_sabotage(sabotage_id)
            return accepted(message='Sabotage had already ended', sabotage_id=sabotage_id, already_ended=True)
        ended = _deactivate(sabotage_id, end_now=True)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[sabotage-overrule] id={sabotage_id} error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)
    cancel_sabotage_expiry(sabotage_id)
    if not ended:
        return accepted(message='Sabotage had already ended', sabotage_id=sabotage_id, already_ended=True)
    current_app.logger.info(f"[sabotage-overrule] id={sabotage_id} target={target_team_id}")
    emit_team(target_team_id, 'sabotage_overruled', {
        'sabotage_id': sabotage_id,
        'message': 'Admin has overruled the sabotage',
    })
    emit_global('sabotage_ended_global', {'target_team_id': target_team_id, 'sabotage_id': sabotage_id})
    return accepted(message='Sabotage overruled successfully', sabotage_id=sabotage_id, already_ended=False)


def history():
    now = utcnow()
    rows = Sabotage.query.order_by(Sabotage.sabotage_start_time.desc(), Sabotage.id.desc()).all()
    return [row.to_dict(now) for row in rows]


def innocent_teams_overview():
    """Innocent teams for the traitor target picker, with sabotaged flags."""
    now = utcnow()
    active_targets = {
        team_id for (team_id,) in db.session.query(Sabotage.target_team_id)
        .filter(Sabotage.is_active.is_(True), Sabotage.sabotage_end_time > now)
        .all()
    }
    teams = Team.query.filter(db.func.lower(Team.team_type) == FACTION_INNOCENT).order_by(Team.team_name.asc()).all()
    return [
        {
            'id': team.id,
            'team_name': team.team_name,
            'total_score': team.total_score,
            'member_count': len(team.members),
            'is_sabotaged': team.id in active_targets,
        }
        for team in teams
    ]
