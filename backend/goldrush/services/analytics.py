from sqlalchemy import case

from goldrush import db
from goldrush.models import (
    GoldBar, Sabotage, ScanHistory, Team, FACTION_INNOCENT, FACTION_TRAITOR, utcnow,
)
from .rounds import get_state


def _count_where(condition):
    return db.func.coalesce(db.func.sum(case((condition, 1), else_=0)), 0)


def dashboard() -> dict:
    state = get_state()
    now = utcnow()

    total, innocents, traitors = db.session.query(
        db.func.count(Team.id),
        _count_where(Team.team_type == FACTION_INNOCENT),
        _count_where(Team.team_type == FACTION_TRAITOR),
    ).one()

    bars_total, bars_scanned, points_collected = db.session.query(
        db.func.count(GoldBar.id),
        _count_where(GoldBar.is_scanned.is_(True)),
        db.func.coalesce(db.func.sum(case((GoldBar.is_scanned.is_(True), GoldBar.points), else_=0)), 0),
    ).one()

    sabotages_total, sabotages_active = db.session.query(
        db.func.count(Sabotage.id),
        _count_where(db.and_(Sabotage.is_active.is_(True), Sabotage.sabotage_end_time > now)),
    ).one()

    top_teams = Team.query.order_by(Team.total_score.desc(), Team.team_name.asc()).limit(5).all()
    recent_scans = ScanHistory.query.order_by(ScanHistory.scanned_at.desc(), ScanHistory.id.desc()).limit(10).all()

    return {
        'game_state': state.to_dict(),
        'teams': {'total': int(total), 'innocents': int(innocents), 'traitors': int(traitors)},
        'gold_bars': {
            'total': int(bars_total),
            'scanned': int(bars_scanned),
            'remaining': int(bars_total) - int(bars_scanned),
            'points_collected': int(points_collected),
        },
        'sabotages': {'total_sabotages': int(sabotages_total), 'active_sabotages': int(sabotages_active)},
        'top_teams': [
            {'team_name': t.team_name, 'team_type': t.team_type, 'total_score': t.total_score} for t in top_teams
        ],
        'recent_scans': [scan.to_dict() for scan in recent_scans],
        'team_performance': team_performance(),
    }


def team_performance():
    collected = dict(
        db.session.query(ScanHistory.team_id, db.func.count(db.distinct(ScanHistory.gold_bar_id)))
        .group_by(ScanHistory.team_id)
        .all()
    )
    performed = dict(
        db.session.query(Sabotage.traitor_team_id, db.func.count(Sabotage.id))
        .group_by(Sabotage.traitor_team_id)
        .all()
    )
    suffered = dict(
        db.session.query(Sabotage.target_team_id, db.func.count(Sabotage.id))
        .group_by(Sabotage.target_team_id)
        .all()
    )
    teams = Team.query.order_by(Team.total_score.desc(), Team.team_name.asc()).all()
    return [
        {
            'team_name': t.team_name,
            'team_type': t.team_type,
            'total_score': t.total_score,
            'gold_bars_collected': int(collected.get(t.id, 0)),
            'sabotages_performed': int(performed.get(t.id, 0)),
            'times_sabotaged': int(suffered.get(t.id, 0)),
        }
        for t in teams
    ]
