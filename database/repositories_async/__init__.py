"""Async PostgreSQL repositories using asyncpg connection pooling"""

from database.repositories_async.base import BaseRepository
from database.repositories_async.polls import PollSignalRepository
from database.repositories_async.weights import WeightRepository

__all__ = [
    "BaseRepository",
    "PollSignalRepository",
    "WeightRepository",
]
