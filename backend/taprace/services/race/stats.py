import logging
from typing import Callable, Iterable, List, Optional

from taprace.errors import RaceRejected
from taprace.schemas import Player, UserStats

logger = logging.getLogger(__name__)

STATS_PATH = 'stats'


def win_rate(wins: int, total_games: int) -> int:
    """Win percentage rounded half up, e.g. 1 of 8 -> 13."""
    if total_games <= 0:
        return 0
    return (200 * wins + total_games) // (2 * total_games)


def check_limit(limit) -> int:
    if limit < 1:
        raise RaceRejected(f'Leaderboard limit must be at least 1, got {limit}')
    return limit


def rank_stats(records: Optional[dict], limit: int) -> List[UserStats]:
    check_limit(limit)
    stats = [UserStats.from_dict(uid, data) for uid, data in (records or {}).items() if isinstance(data, dict)]
    stats.sort(key=lambda s: s.win_rate, reverse=True)
    return stats[:limit]


class StatsAggregator:
    """Per-user win/total/win-rate derived from finished races."""

    def __init__(self, store, default_limit: int = 10):
        self.store = store
        self.default_limit = default_limit

    def read_stats(self, uid: str) -> Optional[UserStats]:
        data = self.store.read(f'{STATS_PATH}/{uid}')
        return UserStats.from_dict(uid, data) if data else None

    def record_race(self, players: Iterable[Player], winner_uid: str) -> List[UserStats]:
        """Count one race for every player and one win for *winner_uid*.

        Each record is read and written back on its own; there is no
        rollback when a later write fails.
        """
        written = []
        for player in players:
            path = f'{STATS_PATH}/{player.uid}'
            current = self.store.read(path) or {'wins': 0, 'totalGames': 0, 'name': player.name}
            wins = int(current.get('wins') or 0) + (1 if player.uid == winner_uid else 0)
            total = int(current.get('totalGames') or 0) + 1
            record = dict(current, uid=player.uid, wins=wins, totalGames=total, winRate=win_rate(wins, total))
            self.store.write(path, record)
            written.append(UserStats.from_dict(player.uid, record))
            logger.info('[stats] uid=%s wins=%s total=%s rate=%s', player.uid, wins, total, record['winRate'])
        return written

    def top_stats(self, limit: Optional[int] = None) -> List[UserStats]:
        if limit is None:
            limit = self.default_limit
        return rank_stats(self.store.read(STATS_PATH), limit)

    def watch_top_stats(self, callback: Callable[[List[UserStats]], None], limit: Optional[int] = None):
        """Push the ranked view to *callback* on every stats change."""
        limit = check_limit(self.default_limit if limit is None else limit)
        return self.store.subscribe(STATS_PATH, lambda records: callback(rank_stats(records, limit)))
