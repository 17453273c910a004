"""Round lifecycle over the singleton game-state row.

Status moves ``not_started -> in_progress -> completed -> in_progress ...``
until ``total_rounds`` is reached. A running round is completed lazily: any
read of the state after ``round_end_time`` flips the status and announces
the end, so no background timer is needed for correctness.
"""
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from goldrush import db
from goldrush.locks import with_game_state_lock
from goldrush.models import (
    GameState, GoldBar, Sabotage, ScanHistory, Team, TeamClue,
    GAME_STATE_ID, STATUS_COMPLETED, STATUS_IN_PROGRESS, STATUS_NOT_STARTED,
    isoformat, utcnow,
)
from .broadcast import emit_global
from .clues import seed_all_teams
from .outcomes import accepted, declined, REJECTED, UNAVAILABLE, TRY_AGAIN
from .scheduler import cancel_all_sabotage_expiries

SETTINGS_FIELDS = (
    'total_rounds',
    'round_duration',
    'sabotage_duration',
    'sabotage_cooldown',
    'sabotage_same_person_cooldown',
)


def _default_state() -> GameState:
    cfg = current_app.config
    return GameState(
        id=GAME_STATE_ID,
        current_round=0,
        total_rounds=int(cfg.get('DEFAULT_TOTAL_ROUNDS', 4)),
        round_duration=int(cfg.get('DEFAULT_ROUND_DURATION_SEC', 600)),
        sabotage_duration=int(cfg.get('DEFAULT_SABOTAGE_DURATION_SEC', 60)),
        sabotage_cooldown=int(cfg.get('DEFAULT_SABOTAGE_COOLDOWN_SEC', 120)),
        sabotage_same_person_cooldown=int(cfg.get('DEFAULT_SABOTAGE_SAME_TARGET_COOLDOWN_SEC', 300)),
        game_status=STATUS_NOT_STARTED,
        is_leaderboard_published=False,
    )


def get_or_create_game_state() -> GameState:
    """Return the state row, inserting defaults when it is missing.

    The insert is flushed inside a savepoint; the caller commits.
    """
    state = db.session.get(GameState, GAME_STATE_ID)
    if state is not None:
        return state
    try:
        with db.session.begin_nested():
            db.session.add(_default_state())
        current_app.logger.warning("[game-state] row missing, inserted defaults")
    except IntegrityError:
        # Another request created it first
        pass
    return db.session.get(GameState, GAME_STATE_ID, populate_existing=True)


def lock_game_state() -> GameState:
    get_or_create_game_state()
    return with_game_state_lock().one()


def _round_ended_payload(state: GameState) -> dict:
    return {'round': state.current_round, 'status': state.game_status}


def get_state() -> GameState:
    """Read the game state, completing an elapsed round as a side effect."""
    state = get_or_create_game_state()
    if not state.round_has_elapsed():
        db.session.commit()
        return state
    try:
        state = with_game_state_lock().one()
        if not state.round_has_elapsed():
            db.session.commit()
            return state
        state.game_status = STATUS_COMPLETED
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[round-expire] write-back failed error={exc!r}")
        raise
    current_app.logger.info(f"[round-end] round={state.current_round} reason=elapsed")
    emit_global('round_ended', _round_ended_payload(state))
    return state


def start_round():
    try:
        state = get_state()
        state = with_game_state_lock().one()
        if state.current_round >= state.total_rounds:
            db.session.rollback()
            return declined(REJECTED, 'All rounds completed', state=state.to_dict())
        if state.game_status == STATUS_IN_PROGRESS:
            db.session.rollback()
            return declined(REJECTED, 'A round is already in progress', state=state.to_dict())

        now = utcnow()
        state.current_round += 1
        state.round_start_time = now
        state.round_end_time = now + timedelta(seconds=int(state.round_duration))
        state.game_status = STATUS_IN_PROGRESS
        seeded = seed_all_teams()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[round-start] failed error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)

    current_app.logger.info(
        f"[round-start] round={state.current_round}/{state.total_rounds} end={state.round_end_time} teams_seeded={seeded}"
    )
    payload = {
        'round': state.current_round,
        'start_time': isoformat(state.round_start_time),
        'end_time': isoformat(state.round_end_time),
    }
    emit_global('round_started', payload)
    return accepted(state=state.to_dict(), **payload)


def end_round():
    """Complete the running round immediately."""
    try:
        state = get_state()
        state = with_game_state_lock().one()
        if state.game_status != STATUS_IN_PROGRESS:
            db.session.rollback()
            return declined(REJECTED, 'No round is in progress', state=state.to_dict())
        state.game_status = STATUS_COMPLETED
        state.round_end_time = utcnow()
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[round-end] failed error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)
    current_app.logger.info(f"[round-end] round={state.current_round} reason=admin")
    emit_global('round_ended', _round_ended_payload(state))
    return accepted(state=state.to_dict())


def reset_game():
    """Wipe all progress: rounds, scans, scores, clues, sabotages.

    Irreversible; the HTTP layer asks for an explicit confirmation.
    """
    try:
        state = lock_game_state()
        ScanHistory.query.delete(synchronize_session=False)
        TeamClue.query.delete(synchronize_session=False)
        Sabotage.query.delete(synchronize_session=False)
        GoldBar.query.update(
            {'is_scanned': False, 'scanned_by_team_id': None, 'scanned_at': None},
            synchronize_session=False,
        )
        Team.query.update({'total_score': 0}, synchronize_session=False)
        state.current_round = 0
        state.round_start_time = None
        state.round_end_time = None
        state.game_status = STATUS_NOT_STARTED
        state.is_leaderboard_published = False
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[game-reset] failed error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)
    db.session.expire_all()
    cancel_all_sabotage_expiries()
    current_app.logger.info("[game-reset] all progress cleared")
    emit_global('game_reset')
    return accepted(message='Game reset successfully', state=state.to_dict())


def update_settings(data: dict):
    values = {}
    for field in SETTINGS_FIELDS:
        if data.get(field) is None:
            continue
        try:
            value = int(data[field])
        except (TypeError, ValueError):
            return declined(REJECTED, f'{field} must be an integer')
        if value < 0 or (field in ('total_rounds', 'round_duration') and value == 0):
            return declined(REJECTED, f'{field} is out of range')
        values[field] = value
    try:
        state = lock_game_state()
        if values.get('total_rounds', state.total_rounds) < state.current_round:
            db.session.rollback()
            return declined(REJECTED, 'total_rounds cannot be below the current round')
        for field, value in values.items():
            setattr(state, field, value)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[game-settings] failed error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)
    current_app.logger.info(f"[game-settings] updated {values}")
    return accepted(state=state.to_dict())
