"""Race domain services: room registry, room sessions and stats.

Everything here talks to the shared state store only, so it can run
against the in-memory store in tests and the SQL-backed store in the app.
"""
from .registry import RoomRegistry
from .session import RoomSession
from .stats import StatsAggregator
