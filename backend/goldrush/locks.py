"""Row-level locks for the coordination critical sections.

Each helper returns a query issuing ``SELECT ... FOR UPDATE`` so the
check-then-write sequences (a bar's scanned flag, a team's active sabotage,
the round status) serialize across concurrent requests. The lock is held
until the surrounding transaction commits or rolls back. Dialects without
row locks (SQLite) ignore the clause and rely on their database-level write
lock instead.

Example::

    bar = with_gold_bar_lock(bar_id).first()
    if bar and not bar.is_scanned:
        ...
        db.session.commit()
"""
from flask_sqlalchemy.query import Query

from goldrush.models import GameState, GoldBar, Sabotage, Team, GAME_STATE_ID


def with_game_state_lock() -> Query:
    return GameState.query.filter_by(id=GAME_STATE_ID).populate_existing().with_for_update()


def with_team_lock(team_id: int) -> Query:
    return Team.query.filter_by(id=team_id).populate_existing().with_for_update()


def lock_teams(team_ids) -> list:
    """Lock several teams in id order so two requests never wait on each other."""
    ids = sorted(set(team_ids))
    return Team.query.filter(Team.id.in_(ids)).order_by(Team.id).populate_existing().with_for_update().all()


def with_gold_bar_lock(gold_bar_id: int) -> Query:
    return GoldBar.query.filter_by(id=gold_bar_id).populate_existing().with_for_update()


def with_sabotage_lock(sabotage_id: int) -> Query:
    return Sabotage.query.filter_by(id=sabotage_id).populate_existing().with_for_update()
