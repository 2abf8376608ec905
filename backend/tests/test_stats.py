import pytest

from taprace.errors import RaceRejected
from taprace.schemas import Player
from taprace.services.race.stats import win_rate


@pytest.mark.parametrize('wins,total,expected', [
    (0, 1, 0),
    (1, 1, 100),
    (1, 2, 50),
    (1, 3, 33),
    (2, 3, 67),
    (1, 8, 13),
    (0, 0, 0),
])
def test_win_rate_rounds_half_up(wins, total, expected):
    assert win_rate(wins, total) == expected


def test_record_race_creates_and_updates_stats(stats, store):
    ann = Player(uid='u1', name='Ann')
    ben = Player(uid='u2', name='Ben')

    stats.record_race([ann, ben], 'u2')
    stats.record_race([ann, ben], 'u1')
    stats.record_race([ann, ben], 'u2')

    assert store.read('stats/u1') == {'uid': 'u1', 'name': 'Ann', 'wins': 1, 'totalGames': 3, 'winRate': 33}
    assert store.read('stats/u2') == {'uid': 'u2', 'name': 'Ben', 'wins': 2, 'totalGames': 3, 'winRate': 67}


def test_record_race_keeps_stored_name(stats, store):
    store.write('stats/u1', {'uid': 'u1', 'name': 'Annie', 'wins': 0, 'totalGames': 1, 'winRate': 0})
    stats.record_race([Player(uid='u1', name='Ann')], 'u1')
    record = stats.read_stats('u1')
    assert record.name == 'Annie'
    assert (record.wins, record.total_games, record.win_rate) == (1, 2, 50)


def test_record_race_has_no_rollback(stats, store, monkeypatch):
    calls = []
    real_write = store.write

    def flaky_write(path, value):
        calls.append(path)
        if path == 'stats/u2':
            raise RuntimeError('store went away')
        real_write(path, value)

    monkeypatch.setattr(store, 'write', flaky_write)
    with pytest.raises(RuntimeError):
        stats.record_race([Player(uid='u1', name='Ann'), Player(uid='u2', name='Ben')], 'u1')

    assert calls == ['stats/u1', 'stats/u2']
    assert store.read('stats/u1')['totalGames'] == 1
    assert store.read('stats/u2') is None


def test_top_stats_orders_by_win_rate(stats, store):
    store.write('stats/a', {'name': 'A', 'wins': 1, 'totalGames': 2, 'winRate': 50})
    store.write('stats/b', {'name': 'B', 'wins': 4, 'totalGames': 5, 'winRate': 80})
    store.write('stats/c', {'name': 'C', 'wins': 8, 'totalGames': 10, 'winRate': 80})

    top = stats.top_stats(10)

    assert [s.uid for s in top][-1] == 'a'
    assert {s.uid for s in top[:2]} == {'b', 'c'}


def test_top_stats_limits_and_has_no_minimum_games(stats, store):
    for i in range(12):
        store.write(f'stats/u{i}', {'name': f'P{i}', 'wins': 1 if i % 2 else 0, 'totalGames': 1, 'winRate': 100 if i % 2 else 0})

    top = stats.top_stats()

    assert len(top) == 10
    assert all(s.total_games == 1 for s in top)
    assert [s.win_rate for s in top[:6]] == [100] * 6
    assert stats.top_stats(3) == top[:3]


def test_top_stats_empty(stats):
    assert stats.top_stats() == []


def test_watch_top_stats_rederives_on_change(stats, store):
    views = []
    unsubscribe = stats.watch_top_stats(views.append, limit=2)
    store.write('stats/a', {'name': 'A', 'wins': 1, 'totalGames': 2, 'winRate': 50})
    store.write('stats/b', {'name': 'B', 'wins': 1, 'totalGames': 1, 'winRate': 100})
    store.write('stats/c', {'name': 'C', 'wins': 0, 'totalGames': 1, 'winRate': 0})
    unsubscribe()

    assert views[0] == []
    assert [s.uid for s in views[-1]] == ['b', 'a']
    assert len(views) == 4


@pytest.mark.parametrize('limit', [0, -1])
def test_top_stats_rejects_non_positive_limit(stats, store, limit):
    store.write('stats/a', {'name': 'A', 'wins': 1, 'totalGames': 2, 'winRate': 50})
    with pytest.raises(RaceRejected):
        stats.top_stats(limit)
    with pytest.raises(RaceRejected):
        stats.watch_top_stats(lambda top: None, limit=limit)
    assert store.subscriber_count == 0
