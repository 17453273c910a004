"""Gold bar scan validation and scoring.

A team may only score the bar its current clue points at. Scanning a bar
someone already collected awards nothing but hands the team a fresh random
clue so it is never stuck on a dead target. The scanned-flag check and the
scanned-flag write happen under one row lock plus a conditional update, so
two teams racing for the same bar can never both be credited.
"""
from flask import current_app
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from goldrush import db
from goldrush.locks import with_gold_bar_lock, with_team_lock
from goldrush.models import GoldBar, ScanHistory, Team, STATUS_IN_PROGRESS, isoformat, utcnow
from .broadcast import emit_team
from .clues import assign_random_target, current_target_id
from .leaderboard import broadcast_standings
from .outcomes import accepted, declined, CONFLICT, NOT_FOUND, REJECTED, UNAVAILABLE, TRY_AGAIN
from .rounds import get_state
from .sabotage import active_sabotage_for

ALREADY_COLLECTED = "This gold bar was already collected! We've assigned you a new random clue."
WRONG_BAR = 'This is not the correct gold bar key! Check your clue.'


def _claim_gold_bar(gold_bar_id: int, team_id: int, now) -> bool:
    """Mark the bar scanned by ``team_id`` unless someone got there first."""
    result = db.session.execute(
        update(GoldBar)
        .where(GoldBar.id == gold_bar_id, GoldBar.is_scanned.is_(False))
        .values(is_scanned=True, scanned_by_team_id=team_id, scanned_at=now)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def _redirect(team_id: int, gold_bar_id: int):
    """Conflict path: no points, new random target."""
    clue = assign_random_target(team_id)
    db.session.commit()
    next_clue = clue.current_clue_text if clue else None
    total_score = db.session.get(Team, team_id).total_score
    current_app.logger.info(f"[scan-taken] team={team_id} bar={gold_bar_id} new_target={clue.next_gold_bar_id if clue else None}")
    emit_team(team_id, 'score_update', {'points': 0, 'total_score': total_score, 'next_clue': next_clue})
    return declined(
        CONFLICT, ALREADY_COLLECTED, points_awarded=0, new_total_score=total_score, next_clue=next_clue
    )


def submit_scan(team_id: int, qr_code: str, user_id=None):
    qr_code = (qr_code or '').strip()
    try:
        if db.session.get(Team, team_id) is None:
            return declined(NOT_FOUND, 'Team not found')

        bar = GoldBar.query.filter_by(qr_code=qr_code).first() if qr_code else None
        if bar is None:
            return declined(NOT_FOUND, 'Invalid QR code')
        gold_bar_id = bar.id

        state = get_state()
        if state.game_status != STATUS_IN_PROGRESS:
            if state.current_round and state.round_end_time and state.round_end_time <= utcnow():
                return declined(REJECTED, 'Round has ended! No more points can be collected.')
            return declined(REJECTED, 'Game round is not in progress. Wait for admin to start.')

        # Critical section: bar row, then team row
        bar = with_gold_bar_lock(gold_bar_id).one()
        team = with_team_lock(team_id).one()

        if bar.is_scanned:
            return _redirect(team_id, gold_bar_id)

        if current_target_id(team_id) != gold_bar_id:
            db.session.rollback()
            return declined(REJECTED, WRONG_BAR, points_awarded=0)

        now = utcnow()
        sabotage = active_sabotage_for(team_id, now=now)
        points = 0 if sabotage is not None else int(bar.points)
        sabotage_end_time = isoformat(sabotage.sabotage_end_time) if sabotage is not None else None

        if not _claim_gold_bar(gold_bar_id, team_id, now):
            return _redirect(team_id, gold_bar_id)

        db.session.add(ScanHistory(
            team_id=team_id,
            gold_bar_id=gold_bar_id,
            user_id=user_id,
            points_earned=points,
            was_sabotaged=sabotage is not None,
            scanned_at=now,
        ))
        team.total_score = Team.total_score + points
        clue = assign_random_target(team_id)
        db.session.commit()
        total_score = db.session.get(Team, team_id).total_score
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[scan] team={team_id} error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)

    next_clue = clue.current_clue_text if clue else None
    was_sabotaged = sabotage is not None
    current_app.logger.info(
        f"[scan] team={team_id} bar={gold_bar_id} user={user_id} points={points} sabotaged={was_sabotaged} total={total_score}"
    )
    broadcast_standings()
    emit_team(team_id, 'score_update', {'points': points, 'total_score': total_score, 'next_clue': next_clue})
    return accepted(
        message='Your team is sabotaged! 0 Points!' if was_sabotaged else 'Gold bar collected!',
        points_awarded=points,
        new_total_score=total_score,
        was_sabotaged=was_sabotaged,
        sabotage_end_time=sabotage_end_time,
        next_clue=next_clue,
    )
