class RaceError(Exception):
    """Base class for errors reported back to the acting user."""

    status_code = 400
    default_message = 'Request failed'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {'error': self.message}


class RaceRejected(RaceError):
    """A precondition was not met; nothing was changed."""

    default_message = 'Request rejected'


class InvalidInvite(RaceRejected):
    default_message = 'Not a valid room code or invite link'


class NotRoomCreator(RaceError):
    status_code = 403
    default_message = 'Only the room creator may do that'


class NotInRoom(RaceError):
    status_code = 403
    default_message = 'You are not a player in this room'


class RoomNotFound(RaceError):
    status_code = 404
    default_message = 'Room not found'


class AuthenticationFailed(RaceError):
    status_code = 401
    default_message = 'Invalid credentials'


class StoreUnavailable(RaceError):
    """The shared state store rejected a read or write; the action must be retried by the user."""

    status_code = 503
    default_message = 'Shared state store is unavailable'
