"""Database modules"""

from contract_signing.db.sqlite import init_db, get_connection
from contract_signing.db.base import DatabaseInterface
from contract_signing.db.supabase import get_database

__all__ = [
    "init_db",
    "get_connection",
    "DatabaseInterface",
    "get_database",
]
