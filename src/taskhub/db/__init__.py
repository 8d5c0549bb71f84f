"""TaskHub database layer."""

from taskhub.db.base import Base, close_db, init_db, transaction
from taskhub.db.tables import TaskTable, UserTable

__all__ = [
    "Base",
    "TaskTable",
    "UserTable",
    "close_db",
    "init_db",
    "transaction",
]
