from .base import Base
from .session import (
    create_all,
    create_engine,
    create_session_factory,
    drop_all,
    get_db_session,
)

__all__ = [
    "Base",
    "create_all",
    "create_engine",
    "create_session_factory",
    "drop_all",
    "get_db_session",
]
