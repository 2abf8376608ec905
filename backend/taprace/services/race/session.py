import logging
import time
from typing import Optional

from taprace.errors import NotInRoom, NotRoomCreator, RaceRejected, RoomNotFound
from taprace.identity import display_name
from taprace.schemas import CarType, Player, Room, RoomStatus

logger = logging.getLogger(__name__)

ROOMS_PATH = 'rooms'
FINISH_LINE = 100


def now_ms() -> int:
    return int(time.time() * 1000)


class RoomSession:
    """One user's live view of a room, and the actions they can take in it.

    The session keeps the last room snapshot pushed by the store and makes
    every decision against it. Nothing here is transactional: two sessions
    acting on stale snapshots can both start or both finish a race.
    """

    def __init__(self, store, room_id, identity, stats=None, max_players=5, min_players=2, tap_step=2):
        self.store = store
        self.room_id = room_id
        self.identity = identity
        self.stats = stats
        self.max_players = max_players
        self.min_players = min_players
        self.tap_step = tap_step
        self.room: Optional[Room] = None
        self.joined = False
        self._unsubscribe = None

    @property
    def path(self):
        return f'{ROOMS_PATH}/{self.room_id}'

    @property
    def uid(self):
        return self.identity.uid

    # ---- lifecycle ----

    def open(self):
        if self._unsubscribe is None:
            self._unsubscribe = self.store.subscribe(self.path, self._on_snapshot)
        return self

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def __enter__(self):
        return self.open()

    def __exit__(self, *exc):
        self.close()

    def _on_snapshot(self, value):
        self.room = Room.from_dict(self.room_id, value) if value else None
        if self.room is None or self.uid in self.room.players:
            return
        if self.room.status == RoomStatus.WAITING and len(self.room.players) < self.max_players:
            player = Player(uid=self.uid, name=display_name(self.identity))
            logger.info('[join] room=%s uid=%s players=%s', self.room_id, self.uid, len(self.room.players))
            self.joined = True
            self.store.merge(f'{self.path}/players', {self.uid: player.to_dict()})

    # ---- helpers ----

    def _require_room(self) -> Room:
        if self.room is None:
            raise RoomNotFound()
        return self.room

    def local_player(self) -> Player:
        room = self._require_room()
        player = room.players.get(self.uid)
        if player is None:
            raise NotInRoom()
        return player

    def _update_player(self, **fields):
        self.store.merge(f'{self.path}/players/{self.uid}', fields)

    # ---- actions ----

    def select_car(self, car):
        self.local_player()
        try:
            car = CarType(car)
        except ValueError:
            raise RaceRejected(f'Unknown car: {car!r}')
        self._update_player(car=car.value)
        return car

    def toggle_ready(self):
        player = self.local_player()
        ready = not player.is_ready
        self._update_player(isReady=ready)
        return ready

    def start_race(self):
        room = self._require_room()
        if room.creator_id != self.uid:
            raise NotRoomCreator('Only the room creator can start the race')
        if room.status != RoomStatus.WAITING:
            raise RaceRejected('The race has already started')
        players = room.player_list()
        if len(players) < self.min_players:
            raise RaceRejected(f'At least {self.min_players} players are needed to start')
        if not all(p.is_ready for p in players):
            raise RaceRejected('Every player must be ready')
        started_at = now_ms()
        self.store.merge(self.path, {'status': RoomStatus.RACING.value, 'startTime': started_at})
        logger.info('[start] room=%s players=%s', self.room_id, len(players))
        return started_at

    def tap(self):
        """Advance the local player; returns the new progress or None when ignored."""
        room = self._require_room()
        if room.status != RoomStatus.RACING:
            return None
        player = self.local_player()
        progress = min(player.progress + self.tap_step, FINISH_LINE)
        # snapshot as it was when the tap was decided
        players = room.player_list()
        self._update_player(progress=progress)
        if progress >= FINISH_LINE:
            self.finish_race(self.uid, players=players)
        return progress

    def finish_race(self, winner_uid, players=None):
        room = self._require_room()
        if room.status != RoomStatus.RACING:
            raise RaceRejected('The race is not running')
        if players is None:
            players = room.player_list()
        winner = next((p for p in players if p.uid == winner_uid), None)
        if winner is None:
            raise NotInRoom()
        self.store.merge(self.path, {'status': RoomStatus.FINISHED.value, 'winnerName': winner.name})
        logger.info('[finish] room=%s winner=%s', self.room_id, winner_uid)
        if self.stats is not None:
            self.stats.record_race(players, winner_uid)
        return winner.name
