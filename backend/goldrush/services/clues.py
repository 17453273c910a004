from typing import Optional

from flask import current_app
from sqlalchemy.dialects import postgresql, sqlite

from goldrush import db
from goldrush.models import GoldBar, Team, TeamClue, utcnow


def pick_random_unscanned() -> Optional[GoldBar]:
    """Uniform pick among every unscanned bar; no memory of past targets."""
    return GoldBar.query.filter_by(is_scanned=False).order_by(db.func.random()).first()


def _upsert_team_clue(values: dict) -> None:
    dialect = db.session.get_bind().dialect.name
    if dialect == 'postgresql':
        insert = postgresql.insert
    elif dialect == 'sqlite':
        insert = sqlite.insert
    else:
        db.session.merge(TeamClue(**values))
        return
    stmt = insert(TeamClue).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[TeamClue.team_id],
        set_={key: stmt.excluded[key] for key in values if key != 'team_id'},
    )
    db.session.execute(stmt)


def assign_random_target(team_id: int) -> Optional[TeamClue]:
    """Point the team at a random unscanned bar.

    Runs inside the caller's transaction and does not commit. When no
    unscanned bar is left the team's clue row is removed, so a later read
    reports that no clue is available.
    """
    bar = pick_random_unscanned()
    if bar is None:
        TeamClue.query.filter_by(team_id=team_id).delete(synchronize_session=False)
        current_app.logger.info(f"[clue-none] team={team_id} no unscanned gold bars left")
        return None
    _upsert_team_clue({
        'team_id': team_id,
        'current_clue_text': bar.clue_text,
        'current_clue_location_id': bar.clue_location_id,
        'next_gold_bar_id': bar.id,
        'updated_at': utcnow(),
    })
    current_app.logger.info(f"[clue-assign] team={team_id} target={bar.id}")
    return current_clue_row(team_id)


def seed_all_teams() -> int:
    """Give every team an initial target; returns how many were assigned."""
    assigned = 0
    for (team_id,) in db.session.query(Team.id).order_by(Team.id).all():
        if assign_random_target(team_id) is not None:
            assigned += 1
    return assigned


def current_clue_row(team_id: int) -> Optional[TeamClue]:
    return TeamClue.query.filter_by(team_id=team_id).populate_existing().first()


def current_target_id(team_id: int) -> Optional[int]:
    row = current_clue_row(team_id)
    return row.next_gold_bar_id if row else None
