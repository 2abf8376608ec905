import logging
from typing import Callable, Iterator, List, Optional

from taprace.identity import display_name
from taprace.schemas import Player, Room, RoomStatus
from .codes import generate_room_code, parse_invite
from .session import ROOMS_PATH, RoomSession

logger = logging.getLogger(__name__)


def open_rooms(records: Optional[dict]) -> List[Room]:
    """Every room in *records* that has not finished yet."""
    rooms = []
    for room_id, data in (records or {}).items():
        if not isinstance(data, dict):
            continue
        room = Room.from_dict(room_id, data)
        if room.status != RoomStatus.FINISHED:
            rooms.append(room)
    return rooms


class RoomRegistry:
    """Creates rooms, lists open ones and hands out sessions."""

    def __init__(self, store, stats=None, max_players=5, min_players=2, tap_step=2):
        self.store = store
        self.stats = stats
        self.max_players = max_players
        self.min_players = min_players
        self.tap_step = tap_step

    def _room_path(self, room_id):
        return f'{ROOMS_PATH}/{room_id}'

    def create_room(self, identity) -> str:
        room_id = generate_room_code()
        if self.store.read(self._room_path(room_id)) is not None:
            # Single retry only; a second collision is accepted
            logger.warning('[room-code-collision] code=%s', room_id)
            room_id = generate_room_code()
        creator = Player(uid=identity.uid, name=display_name(identity))
        room = Room(id=room_id, creator_id=identity.uid, players={creator.uid: creator})
        self.store.write(self._room_path(room_id), room.to_dict())
        logger.info('[room-create] room=%s creator=%s', room_id, identity.uid)
        return room_id

    def read_room(self, room_id) -> Optional[Room]:
        data = self.store.read(self._room_path(room_id))
        return Room.from_dict(room_id, data) if data else None

    def list_open_rooms(self) -> List[Room]:
        return open_rooms(self.store.read(ROOMS_PATH))

    def watch_open_rooms(self, callback: Callable[[List[Room]], None]):
        """Push the full list of open rooms to *callback* on every change."""
        return self.store.subscribe(ROOMS_PATH, lambda records: callback(open_rooms(records)))

    def open_rooms_stream(self, timeout=None) -> Iterator[List[Room]]:
        updates = self.store.stream(ROOMS_PATH, timeout=timeout)
        try:
            for records in updates:
                yield open_rooms(records)
        finally:
            updates.close()

    def join_room(self, room_id_or_invite, identity) -> RoomSession:
        """Resolve a code or invite link to an unopened session."""
        room_id = parse_invite(room_id_or_invite)
        return RoomSession(
            self.store,
            room_id,
            identity,
            stats=self.stats,
            max_players=self.max_players,
            min_players=self.min_players,
            tap_step=self.tap_step,
        )
