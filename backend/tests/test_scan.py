from datetime import datetime, timedelta

from freezegun import freeze_time

from conftest import auth, point_team_at
from goldrush import db
from goldrush.models import GoldBar, ScanHistory, Team, TeamClue, isoformat
from goldrush.services import rounds
from goldrush.services.clues import current_target_id
from goldrush.services.sabotage import attempt_sabotage
from goldrush.services.scanning import ALREADY_COLLECTED, WRONG_BAR, _claim_gold_bar, submit_scan


def _score(team_id):
    return db.session.get(Team, team_id).total_score


def test_correct_scan_awards_points_and_reassigns(flask_app, game):
    t = game.team('innocent')
    b1 = game.gold_bar(points=15)
    b2 = game.gold_bar(points=5)
    rounds.start_round()
    point_team_at(t.id, b1)

    result = submit_scan(t.id, b1.qr_code)
    assert result['accepted'] is True
    assert result['points_awarded'] == 15
    assert result['new_total_score'] == 15
    assert result['was_sabotaged'] is False
    assert result['next_clue'] == b2.clue_text

    bar = db.session.get(GoldBar, b1.id)
    assert bar.is_scanned is True
    assert bar.scanned_by_team_id == t.id
    assert current_target_id(t.id) == b2.id
    history = ScanHistory.query.filter_by(team_id=t.id).all()
    assert [(h.gold_bar_id, h.points_earned) for h in history] == [(b1.id, 15)]


def test_unknown_qr_code_is_not_found(flask_app, game):
    t = game.team('innocent')
    rounds.start_round()
    result = submit_scan(t.id, 'no-such-bar')
    assert result['accepted'] is False
    assert result['kind'] == 'not_found'
    assert result['reason'] == 'Invalid QR code'


def test_scan_outside_round_is_rejected(flask_app, game):
    t = game.team('innocent')
    bar = game.gold_bar()

    result = submit_scan(t.id, bar.qr_code)
    assert result['kind'] == 'rejected'
    assert result['reason'] == 'Game round is not in progress. Wait for admin to start.'

    with freeze_time('2026-10-01 12:00:00') as frozen:
        rounds.start_round()
        point_team_at(t.id, bar)
        frozen.tick(timedelta(seconds=600))
        result = submit_scan(t.id, bar.qr_code)
    assert result['kind'] == 'rejected'
    assert result['reason'] == 'Round has ended! No more points can be collected.'
    assert db.session.get(GoldBar, bar.id).is_scanned is False
    assert _score(t.id) == 0


def test_wrong_bar_changes_nothing(flask_app, game):
    t = game.team('innocent')
    target = game.gold_bar(points=10)
    other = game.gold_bar(points=50)
    rounds.start_round()
    point_team_at(t.id, target)

    result = submit_scan(t.id, other.qr_code)
    assert result['accepted'] is False
    assert result['kind'] == 'rejected'
    assert result['reason'] == WRONG_BAR
    assert db.session.get(GoldBar, other.id).is_scanned is False
    assert current_target_id(t.id) == target.id
    assert _score(t.id) == 0
    assert ScanHistory.query.count() == 0


def test_team_without_target_cannot_score(flask_app, game):
    t = game.team('innocent')
    rounds.start_round()
    bar = game.gold_bar()
    assert db.session.get(TeamClue, t.id) is None

    result = submit_scan(t.id, bar.qr_code)
    assert result['reason'] == WRONG_BAR
    assert db.session.get(GoldBar, bar.id).is_scanned is False


def test_already_collected_bar_redirects_without_points(flask_app, game):
    first = game.team('innocent')
    second = game.team('innocent')
    contested = game.gold_bar(points=30)
    spare = game.gold_bar(points=10)
    rounds.start_round()
    point_team_at(first.id, contested)
    point_team_at(second.id, contested)

    assert submit_scan(first.id, contested.qr_code)['points_awarded'] == 30

    result = submit_scan(second.id, contested.qr_code)
    assert result['accepted'] is False
    assert result['kind'] == 'conflict'
    assert result['reason'] == ALREADY_COLLECTED
    assert result['points_awarded'] == 0
    assert result['new_total_score'] == 0
    assert result['next_clue'] == spare.clue_text
    assert current_target_id(second.id) == spare.id

    assert _score(first.id) == 30
    assert _score(second.id) == 0
    assert db.session.get(GoldBar, contested.id).scanned_by_team_id == first.id
    assert ScanHistory.query.filter_by(gold_bar_id=contested.id).count() == 1


def test_bar_can_only_be_claimed_once(flask_app, game):
    a = game.team('innocent')
    b = game.team('innocent')
    bar = game.gold_bar()
    assert _claim_gold_bar(bar.id, a.id, None) is True
    assert _claim_gold_bar(bar.id, b.id, None) is False
    db.session.commit()
    assert db.session.get(GoldBar, bar.id).scanned_by_team_id == a.id


def test_many_teams_racing_for_one_bar_credit_one(flask_app, game):
    teams = [game.team('innocent') for _ in range(6)]
    contested = game.gold_bar(points=40)
    game.gold_bar(points=5)
    rounds.start_round()
    for t in teams:
        point_team_at(t.id, contested)

    # Every claim in one transaction sees the same starting row
    claims = [_claim_gold_bar(contested.id, t.id, None) for t in teams]
    db.session.rollback()
    assert claims.count(True) == 1

    outcomes = [submit_scan(t.id, contested.qr_code) for t in teams]
    credited = [o for o in outcomes if o['accepted']]
    assert len(credited) == 1
    assert credited[0]['points_awarded'] == 40
    assert [o['kind'] for o in outcomes if not o['accepted']] == ['conflict'] * 5

    winner = db.session.get(GoldBar, contested.id).scanned_by_team_id
    assert sorted(_score(t.id) for t in teams) == [0, 0, 0, 0, 0, 40]
    assert _score(winner) == 40
    assert ScanHistory.query.filter_by(gold_bar_id=contested.id).count() == 1


def test_last_bar_leaves_team_without_clue(flask_app, game):
    t = game.team('innocent')
    only = game.gold_bar(points=10)
    rounds.start_round()
    assert current_target_id(t.id) == only.id

    result = submit_scan(t.id, only.qr_code)
    assert result['accepted'] is True
    assert result['next_clue'] is None
    assert db.session.get(TeamClue, t.id) is None


def test_sabotaged_team_scores_zero_until_expiry(flask_app, game):
    innocent = game.team('innocent')
    traitor = game.team('traitor')
    b1 = game.gold_bar(points=10)
    b2 = game.gold_bar(points=10)

    with freeze_time('2026-10-01 12:00:00') as frozen:
        rounds.start_round()
        point_team_at(innocent.id, b1)
        sabotage = attempt_sabotage(traitor.id, innocent.id)
        assert sabotage['accepted'] is True
        sabotage_end = datetime(2026, 10, 1, 12, 1, 0)

        frozen.tick(timedelta(seconds=30))
        result = submit_scan(innocent.id, b1.qr_code)
        assert result['accepted'] is True
        assert result['points_awarded'] == 0
        assert result['was_sabotaged'] is True
        assert result['new_total_score'] == 0
        assert result['sabotage_end_time'] == isoformat(sabotage_end)
        # The bar is consumed even though it scored nothing
        assert db.session.get(GoldBar, b1.id).is_scanned is True
        assert ScanHistory.query.filter_by(gold_bar_id=b1.id).one().was_sabotaged is True

        point_team_at(innocent.id, b2)
        frozen.tick(timedelta(seconds=35))
        result = submit_scan(innocent.id, b2.qr_code)
        assert result['points_awarded'] == 10
        assert result['was_sabotaged'] is False
        assert result['sabotage_end_time'] is None
        assert _score(innocent.id) == 10


def test_scan_endpoint(client, game):
    t = game.team('innocent', lead_email='captain@example.com')
    bar = game.gold_bar(points=20)
    rounds.start_round()
    point_team_at(t.id, bar)

    res = client.post('/api/team/scan-gold-bar', json={'qr_code': bar.qr_code}, headers=auth('captain@example.com'))
    assert res.status_code == 200
    body = res.get_json()
    assert body['points_awarded'] == 20
    assert body['new_total_score'] == 20

    scan = ScanHistory.query.one()
    assert scan.user_id is not None

    res = client.post('/api/team/scan-gold-bar', json={'qr_code': bar.qr_code}, headers=auth('captain@example.com'))
    assert res.status_code == 409
    assert res.get_json()['points_awarded'] == 0

    res = client.post('/api/team/scan-gold-bar', json={'qr_code': 'bogus'}, headers=auth('captain@example.com'))
    assert res.status_code == 404


def test_scan_endpoint_requires_team(client, game):
    game.user('loner@example.com')
    res = client.post('/api/team/scan-gold-bar', json={'qr_code': 'x'}, headers=auth('loner@example.com'))
    assert res.status_code == 404
    assert res.get_json()['message'] == 'You are not in a team'


def test_current_clue_endpoint(client, game):
    t = game.team('innocent', lead_email='captain@example.com')
    res = client.get('/api/team/current-clue', headers=auth('captain@example.com'))
    assert res.get_json() == {'message': 'No clue available yet. Wait for the round to start.'}

    bar = game.gold_bar(clue_text='Under the big oak')
    rounds.start_round()
    res = client.get('/api/team/current-clue', headers=auth('captain@example.com'))
    assert res.status_code == 200
    assert res.get_json()['clue_text'] == 'Under the big oak'
    assert current_target_id(t.id) == bar.id
