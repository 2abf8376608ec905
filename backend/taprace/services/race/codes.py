import random
import re

from taprace.errors import InvalidInvite

# Uppercase letters and digits without the look-alikes I, O, 0 and 1
ROOM_CODE_ALPHABET = 'ABCDEFGHJKLMNPQRSTUVWXYZ23456789'
ROOM_CODE_LENGTH = 4

_CODE_RE = re.compile(f'^[{ROOM_CODE_ALPHABET}]{{{ROOM_CODE_LENGTH}}}$')
_INVITE_RE = re.compile(r'#/room/([^/?#\s]+)/?(?:[?#].*)?$')


def generate_room_code(length=ROOM_CODE_LENGTH):
    """Generate a short, human-readable room code (not checked for uniqueness)."""
    return ''.join(random.choices(ROOM_CODE_ALPHABET, k=length))


def is_room_code(value):
    return bool(value) and bool(_CODE_RE.match(value))


def parse_invite(value):
    """Return the room code from an invite link or a bare code."""
    text = (value or '').strip()
    match = _INVITE_RE.search(text)
    if match:
        text = match.group(1)
    code = text.upper()
    if not is_room_code(code):
        raise InvalidInvite(f'Not a valid room code: {value!r}')
    return code


def invite_link(origin, room_id):
    return f"{origin.rstrip('/')}/#/room/{room_id}"
