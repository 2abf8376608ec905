def test_register_login_and_logout(client, register_user):
    user = register_user(client, 'ann@example.com', 'Ann')
    assert user['display_name'] == 'Ann'
    assert user['uid']

    assert client.get('/check_login').get_json()['user']['uid'] == user['uid']
    assert client.post('/logout').get_json() == {'success': True}
    assert client.get('/check_login').status_code == 401

    res = client.post('/login', json={'email': 'ann@example.com', 'password': 'password'})
    assert res.status_code == 200
    assert res.get_json()['success'] is True


def test_login_rejects_bad_credentials(client, register_user):
    register_user(client, 'ann@example.com', 'Ann')
    client.post('/logout')
    res = client.post('/login', json={'email': 'ann@example.com', 'password': 'wrong'})
    assert res.status_code == 401
    assert res.get_json() == {'success': False, 'message': 'Invalid credentials'}


def test_duplicate_registration_rejected(client, register_user):
    register_user(client, 'ann@example.com', 'Ann')
    res = client.post('/register', json={'email': 'ANN@example.com', 'password': 'x'})
    assert res.status_code == 400


def test_room_endpoints_require_login(client):
    res = client.post('/api/rooms/create')
    assert res.status_code == 401
    assert res.get_json() == {'error': 'Login required'}


def test_create_room(player_clients):
    ann, ann_user = player_clients['Ann']
    res = ann.post('/api/rooms/create')
    assert res.status_code == 201
    data = res.get_json()
    room_id = data['room_id']
    assert len(room_id) == 4
    assert data['invite_link'].endswith(f'/#/room/{room_id}')

    state = ann.get(f'/api/rooms/{room_id}/state').get_json()
    assert state['status'] == 'waiting'
    assert state['creatorId'] == ann_user['uid']
    assert state['players'] == {
        ann_user['uid']: {'uid': ann_user['uid'], 'name': 'Ann', 'car': 'red_race', 'progress': 0, 'isReady': False},
    }


def test_join_resolves_link_and_code(player_clients):
    ann, _ = player_clients['Ann']
    ben, _ = player_clients['Ben']
    room_id = ann.post('/api/rooms/create').get_json()['room_id']

    by_code = ben.post('/api/rooms/join', json={'invite': room_id.lower()})
    by_link = ben.post('/api/rooms/join', json={'invite': f'https://race.example.com/#/room/{room_id}'})
    assert by_code.get_json() == by_link.get_json() == {'room_id': room_id}

    # Resolving does not add the player yet
    state = ben.get(f'/api/rooms/{room_id}/state').get_json()
    assert len(state['players']) == 1

    assert ben.post('/api/rooms/join', json={'invite': 'nope'}).status_code == 400
    assert ben.post('/api/rooms/join', json={'invite': 'ZZZZ'}).status_code == 404


def test_full_race_flow(player_clients):
    ann, ann_user = player_clients['Ann']
    ben, ben_user = player_clients['Ben']
    room_id = ann.post('/api/rooms/create').get_json()['room_id']

    entered = ben.post(f'/api/rooms/{room_id}/enter').get_json()
    assert entered['joined'] is True
    assert set(entered['players']) == {ann_user['uid'], ben_user['uid']}

    car = ben.post(f'/api/rooms/{room_id}/car', json={'car': 'police'}).get_json()
    assert car['players'][ben_user['uid']]['car'] == 'police'
    assert ben.post(f'/api/rooms/{room_id}/car', json={'car': 'rocket'}).status_code == 400

    # Not everyone ready yet
    res = ann.post(f'/api/rooms/{room_id}/start')
    assert res.status_code == 400
    assert res.get_json() == {'error': 'Every player must be ready'}

    ann.post(f'/api/rooms/{room_id}/ready')
    ready = ben.post(f'/api/rooms/{room_id}/ready').get_json()
    assert all(p['isReady'] for p in ready['players'].values())

    assert ben.post(f'/api/rooms/{room_id}/start').status_code == 403
    started = ann.post(f'/api/rooms/{room_id}/start').get_json()
    assert started['status'] == 'racing'
    assert isinstance(started['startTime'], int)

    last = None
    for _ in range(50):
        last = ben.post(f'/api/rooms/{room_id}/tap').get_json()
    assert last['progress'] == 100
    assert last['status'] == 'finished'
    assert last['winnerName'] == 'Ben'

    late = ann.post(f'/api/rooms/{room_id}/tap').get_json()
    assert late['accepted'] is False

    ann_stats = ann.get(f"/api/stats/{ann_user['uid']}").get_json()
    ben_stats = ann.get(f"/api/stats/{ben_user['uid']}").get_json()
    assert (ann_stats['wins'], ann_stats['totalGames'], ann_stats['winRate']) == (0, 1, 0)
    assert (ben_stats['wins'], ben_stats['totalGames'], ben_stats['winRate']) == (1, 1, 100)

    top = ann.get('/api/stats/top?limit=10').get_json()
    assert [s['name'] for s in top] == ['Ben', 'Ann']

    # Finished rooms drop out of the lobby
    assert ann.get('/api/rooms').get_json() == []


def test_lobby_lists_open_rooms(player_clients):
    ann, _ = player_clients['Ann']
    cat, _ = player_clients['Cat']
    first = ann.post('/api/rooms/create').get_json()['room_id']
    second = cat.post('/api/rooms/create').get_json()['room_id']

    listed = ann.get('/api/rooms').get_json()
    assert {r['id'] for r in listed} == {first, second}


def test_tap_before_start_is_ignored(player_clients):
    ann, ann_user = player_clients['Ann']
    room_id = ann.post('/api/rooms/create').get_json()['room_id']
    res = ann.post(f'/api/rooms/{room_id}/tap').get_json()
    assert res['accepted'] is False
    assert res['players'][ann_user['uid']]['progress'] == 0


def test_unknown_room_returns_404(player_clients):
    ann, _ = player_clients['Ann']
    assert ann.get('/api/rooms/ZZZZ/state').status_code == 404
    assert ann.post('/api/rooms/ZZZZ/enter').status_code == 404


def test_stats_endpoints(client):
    assert client.get('/api/stats/top').get_json() == []
    assert client.get('/api/stats/nobody').status_code == 404
    assert client.get('/api/stats/top?limit=abc').status_code == 400
    assert client.get('/api/stats/top?limit=-1').status_code == 400
