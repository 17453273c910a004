from conftest import auth, point_team_at
from goldrush import db, socketio, SOCKET_NAMESPACE
from goldrush.services import rounds
from goldrush.services import sabotage as sabotage_svc
from goldrush.services.leaderboard import set_visibility
from goldrush.services.scanning import submit_scan


def _names(test_client):
    return [pkt['name'] for pkt in test_client.get_received(SOCKET_NAMESPACE)]


def test_socket_connect_and_join(sio_client):
    assert sio_client.is_connected(SOCKET_NAMESPACE)
    assert 'connected' in _names(sio_client)

    sio_client.emit('join_team', {'team_id': 3}, namespace=SOCKET_NAMESPACE)
    received = sio_client.get_received(SOCKET_NAMESPACE)
    assert received[-1]['name'] == 'joined'
    assert received[-1]['args'][0] == {'room': 'team_3'}

    sio_client.emit('join_team', {}, namespace=SOCKET_NAMESPACE)
    assert _names(sio_client) == ['error']


def test_team_events_stay_in_team_room(flask_app, client, game):
    mine = game.team('innocent', lead_email='mine@example.com')
    theirs = game.team('innocent')
    bar = game.gold_bar(points=10)
    rounds.start_round()
    point_team_at(mine.id, bar)

    member = socketio.test_client(flask_app, namespace=SOCKET_NAMESPACE)
    outsider = socketio.test_client(flask_app, namespace=SOCKET_NAMESPACE)
    member.emit('join_team', {'team_id': mine.id}, namespace=SOCKET_NAMESPACE)
    outsider.emit('join_team', theirs.id, namespace=SOCKET_NAMESPACE)
    member.get_received(SOCKET_NAMESPACE)
    outsider.get_received(SOCKET_NAMESPACE)

    res = client.post('/api/team/scan-gold-bar', json={'qr_code': bar.qr_code}, headers=auth('mine@example.com'))
    assert res.status_code == 200

    updates = [p for p in member.get_received(SOCKET_NAMESPACE) if p['name'] == 'score_update']
    assert len(updates) == 1
    assert updates[0]['args'][0]['points'] == 10
    assert updates[0]['args'][0]['total_score'] == 10
    outsider_names = _names(outsider)
    assert 'score_update' not in outsider_names
    assert 'leaderboard_update' in outsider_names

    member.disconnect(namespace=SOCKET_NAMESPACE)
    outsider.disconnect(namespace=SOCKET_NAMESPACE)


def test_round_and_sabotage_broadcasts(flask_app, game, sio_client):
    victim = game.team('innocent')
    traitor = game.team('traitor')
    sio_client.emit('join_team', {'team_id': victim.id}, namespace=SOCKET_NAMESPACE)
    sio_client.get_received(SOCKET_NAMESPACE)

    rounds.start_round()
    assert 'round_started' in _names(sio_client)

    sabotage_svc.attempt_sabotage(traitor.id, victim.id)
    received = sio_client.get_received(SOCKET_NAMESPACE)
    by_name = {p['name']: p['args'][0] for p in received}
    assert by_name['sabotaged']['duration'] == 60
    assert by_name['sabotage_started_global']['target_team_id'] == victim.id


def test_admin_room_sees_hidden_standings(flask_app, game, sio_client):
    game.team('innocent', name='Alpha')
    admin_view = socketio.test_client(flask_app, namespace=SOCKET_NAMESPACE)
    admin_view.emit('join_admin', namespace=SOCKET_NAMESPACE)
    admin_view.get_received(SOCKET_NAMESPACE)
    sio_client.get_received(SOCKET_NAMESPACE)

    set_visibility(False)

    public = {p['name']: p['args'][0] for p in sio_client.get_received(SOCKET_NAMESPACE)}
    assert public['leaderboard_visibility'] == {'visible': False}
    assert public['leaderboard_update'] == []
    assert 'admin_leaderboard_update' not in public

    private = {p['name']: p['args'][0] for p in admin_view.get_received(SOCKET_NAMESPACE)}
    assert [row['team_name'] for row in private['admin_leaderboard_update']] == ['Alpha']
    admin_view.disconnect(namespace=SOCKET_NAMESPACE)


def test_collected_bar_update_carries_current_score(flask_app, game, sio_client):
    winner = game.team('innocent')
    loser = game.team('innocent')
    contested = game.gold_bar(points=30)
    game.gold_bar(points=5)
    rounds.start_round()
    loser.total_score = 15
    db.session.commit()
    point_team_at(winner.id, contested)
    point_team_at(loser.id, contested)
    submit_scan(winner.id, contested.qr_code)

    sio_client.emit('join_team', {'team_id': loser.id}, namespace=SOCKET_NAMESPACE)
    sio_client.get_received(SOCKET_NAMESPACE)

    result = submit_scan(loser.id, contested.qr_code)
    assert result['kind'] == 'conflict'
    updates = [p['args'][0] for p in sio_client.get_received(SOCKET_NAMESPACE) if p['name'] == 'score_update']
    assert len(updates) == 1
    assert updates[0]['points'] == 0
    assert updates[0]['total_score'] == 15
    assert updates[0]['next_clue'] is not None
