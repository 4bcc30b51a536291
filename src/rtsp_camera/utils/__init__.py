"""Small shared helpers (environment parsing, locking)."""

from .env import env_bool, env_float, env_int, env_str
from .rwlock import ReadWriteLock

__all__ = [
    "ReadWriteLock",
    "env_bool",
    "env_float",
    "env_int",
    "env_str",
]
