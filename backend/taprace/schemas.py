"""Records kept in the shared state store.

Rooms, players and stats travel through the store as plain JSON-able
dicts using camelCase keys. The classes here wrap those dicts with
``from_dict``/``to_dict`` so the services can work with attributes.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class RoomStatus(str, Enum):
    WAITING = 'waiting'
    RACING = 'racing'
    FINISHED = 'finished'


class CarType(str, Enum):
    RED_RACE = 'red_race'
    BLUE_SUV = 'blue_suv'
    YELLOW_TAXI = 'yellow_taxi'
    GREEN_TRACTOR = 'green_tractor'
    PINK_UFO = 'pink_ufo'
    POLICE = 'police'
    AMBULANCE = 'ambulance'
    FIRETRUCK = 'firetruck'
    MONSTER_TRUCK = 'monster_truck'
    BUS = 'bus'
    SPORT_WHITE = 'sport_white'
    DELIVERY_VAN = 'delivery_van'
    KART = 'kart'
    CLASSIC_BLUE = 'classic_blue'


DEFAULT_CAR = CarType.RED_RACE


@dataclass
class Player:
    uid: str
    name: str
    car: CarType = DEFAULT_CAR
    progress: int = 0
    is_ready: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Player':
        try:
            car = CarType(data.get('car'))
        except ValueError:
            car = DEFAULT_CAR
        return cls(
            uid=data['uid'],
            name=data.get('name') or '',
            car=car,
            progress=int(data.get('progress') or 0),
            is_ready=bool(data.get('isReady')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uid': self.uid,
            'name': self.name,
            'car': self.car.value,
            'progress': self.progress,
            'isReady': self.is_ready,
        }


@dataclass
class Room:
    id: str
    creator_id: str
    status: RoomStatus = RoomStatus.WAITING
    players: Dict[str, Player] = field(default_factory=dict)
    start_time: Optional[int] = None
    winner_name: Optional[str] = None

    @classmethod
    def from_dict(cls, room_id: str, data: Dict[str, Any]) -> 'Room':
        players = {}
        for uid, pdata in (data.get('players') or {}).items():
            if isinstance(pdata, dict):
                players[uid] = Player.from_dict({'uid': uid, **pdata})
        return cls(
            id=room_id,
            creator_id=data.get('creatorId') or '',
            status=RoomStatus(data.get('status') or RoomStatus.WAITING.value),
            players=players,
            start_time=data.get('startTime'),
            winner_name=data.get('winnerName'),
        )

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'creatorId': self.creator_id,
            'status': self.status.value,
            'players': {uid: p.to_dict() for uid, p in self.players.items()},
        }
        if self.start_time is not None:
            data['startTime'] = self.start_time
        if self.winner_name is not None:
            data['winnerName'] = self.winner_name
        return data

    def player_list(self) -> List[Player]:
        return list(self.players.values())


@dataclass
class UserStats:
    uid: str
    name: str
    wins: int = 0
    total_games: int = 0
    win_rate: int = 0

    @classmethod
    def from_dict(cls, uid: str, data: Dict[str, Any]) -> 'UserStats':
        return cls(
            uid=data.get('uid') or uid,
            name=data.get('name') or '',
            wins=int(data.get('wins') or 0),
            total_games=int(data.get('totalGames') or 0),
            win_rate=int(data.get('winRate') or 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uid': self.uid,
            'name': self.name,
            'wins': self.wins,
            'totalGames': self.total_games,
            'winRate': self.win_rate,
        }
