from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from goldrush import db
from goldrush.models import GameState, Team, TeamMember, GAME_STATE_ID
from .broadcast import emit_admin, emit_global
from .outcomes import accepted, declined, UNAVAILABLE, TRY_AGAIN
from .rounds import lock_game_state


def standings():
    """All teams ordered by score, ties broken by name."""
    member_count = (
        db.session.query(TeamMember.team_id, db.func.count(TeamMember.id).label('member_count'))
        .group_by(TeamMember.team_id)
        .subquery()
    )
    rows = (
        db.session.query(Team, db.func.coalesce(member_count.c.member_count, 0))
        .outerjoin(member_count, member_count.c.team_id == Team.id)
        .order_by(Team.total_score.desc(), Team.team_name.asc())
        .all()
    )
    return [
        {
            'id': team.id,
            'team_name': team.team_name,
            'team_type': team.team_type,
            'total_score': team.total_score,
            'member_count': int(count),
        }
        for team, count in rows
    ]


def is_published() -> bool:
    state = db.session.get(GameState, GAME_STATE_ID)
    return bool(state and state.is_leaderboard_published)


def public_standings():
    # Hidden leaderboards read as empty rather than as an error
    if not is_published():
        return []
    return standings()


def broadcast_standings() -> None:
    try:
        full = standings()
        visible = full if is_published() else []
    except SQLAlchemyError as exc:
        current_app.logger.warning(f"[leaderboard-broadcast] skipped error={exc!r}")
        return
    emit_global('leaderboard_update', visible)
    emit_admin('admin_leaderboard_update', full)


def set_visibility(visible: bool):
    try:
        state = lock_game_state()
        state.is_leaderboard_published = bool(visible)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error(f"[leaderboard-visibility] failed error={exc!r}")
        return declined(UNAVAILABLE, TRY_AGAIN)
    current_app.logger.info(f"[leaderboard-visibility] visible={bool(visible)}")
    emit_global('leaderboard_visibility', {'visible': bool(visible)})
    broadcast_standings()
    return accepted(message=f"Leaderboard {'published' if visible else 'hidden'}", visible=bool(visible))
