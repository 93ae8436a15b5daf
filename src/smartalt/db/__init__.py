"""smartalt storage layer."""

from smartalt.db.base import HostStorage
from smartalt.db.connection import Database
from smartalt.db.migrations import MIGRATIONS, run_migrations
from smartalt.db.repository import Repository
from smartalt.db.schema import initialize, open_db
from smartalt.db.transients import TransientStore

__all__ = [
    "Database",
    "HostStorage",
    "Repository",
    "TransientStore",
    "initialize",
    "open_db",
    "run_migrations",
    "MIGRATIONS",
]
