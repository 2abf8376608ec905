"""Identity handed to the race services: a stable uid and a display name."""
from collections import namedtuple

from flask import current_app
from flask_login import current_user

from taprace.errors import AuthenticationFailed

Identity = namedtuple('Identity', ['uid', 'display_name'])


def identity_for(user):
    return Identity(uid=user.uid, display_name=user.display_name or None)


def current_identity():
    if not current_user or not current_user.is_authenticated:
        raise AuthenticationFailed('Login required')
    return identity_for(current_user)


def display_name(identity, default=None):
    if identity.display_name:
        return identity.display_name
    if default is not None:
        return default
    try:
        return current_app.config.get('DEFAULT_DISPLAY_NAME', 'Nameless')
    except RuntimeError:
        # outside an application context
        return 'Nameless'
