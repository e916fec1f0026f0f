# Record Store Module
"""
User records and the stores that hold them:
- InMemoryUserStore - users.py
- SqliteUserStore - sqlite.py
"""

from .users import (
    User,
    UserStore,
    InMemoryUserStore,
    MUTABLE_FIELDS,
)

from .sqlite import SqliteUserStore

__all__ = [
    'User',
    'UserStore',
    'InMemoryUserStore',
    'MUTABLE_FIELDS',
    'SqliteUserStore',
]
