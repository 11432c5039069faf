"""SQLite database operations"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import List, Optional

from contract_signing.utils.config import get_settings

# Columns stored as JSON text
JSON_COLUMNS = {"variables", "signer", "event_data", "payload", "recipient", "response"}
BOOL_COLUMNS = {"is_active", "is_visible", "pending", "read"}


def get_db_path() -> Path:
    """Get database path from settings"""
    settings = get_settings()
    return Path(settings.database_path)


@contextmanager
def get_connection():
    """Get a database connection as context manager"""
    db_path = get_db_path()
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    conn.row_factory = sqlite3.Row
    try:
        yield conn
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        conn.close()


def format_timestamp(value: datetime) -> str:
    """Fixed-width UTC timestamp so text comparison matches time order."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def _encode(column: str, value):
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, Enum):
        return value.value
    if column in JSON_COLUMNS and value is not None:
        return json.dumps(value, ensure_ascii=False, default=str)
    if isinstance(value, bool):
        return int(value)
    return value


def _row_to_dict(row: Optional[sqlite3.Row]) -> Optional[dict]:
    if row is None:
        return None
    data = dict(row)
    for key, value in data.items():
        if key in JSON_COLUMNS and isinstance(value, str):
            data[key] = json.loads(value)
        elif key in BOOL_COLUMNS and value is not None:
            data[key] = bool(value)
    return data


def _insert(table: str, row: dict, or_replace: bool = False) -> None:
    columns = list(row.keys())
    values = [_encode(c, row[c]) for c in columns]
    verb = "INSERT OR REPLACE" if or_replace else "INSERT"
    placeholders = ", ".join("?" for _ in columns)
    with get_connection() as conn:
        conn.execute(
            f"{verb} INTO {table} ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )


def _update(table: str, key: str, fields: dict, extra_where: str = "") -> int:
    columns = list(fields.keys())
    assignments = ", ".join(f"{c} = ?" for c in columns)
    values = [_encode(c, fields[c]) for c in columns] + [key]
    with get_connection() as conn:
        cursor = conn.execute(
            f"UPDATE {table} SET {assignments} WHERE id = ? {extra_where}",
            values,
        )
        return cursor.rowcount


def _fetch_one(sql: str, params: tuple) -> Optional[dict]:
    with get_connection() as conn:
        return _row_to_dict(conn.execute(sql, params).fetchone())


def _fetch_all(sql: str, params: tuple = ()) -> List[dict]:
    with get_connection() as conn:
        return [_row_to_dict(r) for r in conn.execute(sql, params).fetchall()]


def init_db():
    """Initialize database with schema"""
    with get_connection() as conn:
        cursor = conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS document_templates (
                id TEXT PRIMARY KEY,
                name TEXT NOT NULL,
                document_type TEXT,
                content TEXT NOT NULL,
                is_active INTEGER DEFAULT 1,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS contracts (
                id TEXT PRIMARY KEY,
                document_type TEXT NOT NULL,
                subject TEXT DEFAULT '',
                template_id TEXT,
                content TEXT NOT NULL,
                variables TEXT,
                signature_status TEXT NOT NULL DEFAULT 'unsigned',
                signature_token TEXT UNIQUE,
                token_expires_at TEXT,
                signer TEXT NOT NULL,
                is_visible INTEGER DEFAULT 1,
                signed_document TEXT,
                signature_image TEXT,
                signed_at TEXT,
                signature_ip TEXT,
                signature_user_agent TEXT,
                created_at TEXT,
                updated_at TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_contracts_expiry
            ON contracts(signature_status, token_expires_at)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS signature_audit_log (
                seq INTEGER PRIMARY KEY AUTOINCREMENT,
                id TEXT UNIQUE NOT NULL,
                contract_id TEXT NOT NULL REFERENCES contracts(id),
                event_type TEXT NOT NULL,
                created_at TEXT NOT NULL,
                ip_address TEXT,
                user_agent TEXT,
                event_data TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_audit_contract
            ON signature_audit_log(contract_id, created_at)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS certifications (
                id TEXT PRIMARY KEY,
                contract_id TEXT UNIQUE NOT NULL REFERENCES contracts(id),
                content_hash TEXT NOT NULL,
                network TEXT NOT NULL,
                tx_id TEXT NOT NULL,
                proof TEXT NOT NULL,
                pending INTEGER DEFAULT 0,
                anchor_server TEXT,
                submitted_at TEXT NOT NULL,
                captured_at TEXT NOT NULL,
                signer_ip TEXT
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_certifications_hash
            ON certifications(content_hash)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notification_dispatch_logs (
                id TEXT PRIMARY KEY,
                event_type TEXT NOT NULL,
                channel TEXT NOT NULL,
                status TEXT NOT NULL,
                recipient_address TEXT,
                recipient TEXT,
                payload TEXT,
                contract_id TEXT,
                attempts INTEGER DEFAULT 1,
                error_message TEXT,
                response TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_dispatch_key
            ON notification_dispatch_logs(event_type, channel, recipient_address, contract_id, created_at)
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id TEXT PRIMARY KEY,
                user_id TEXT NOT NULL,
                title TEXT NOT NULL,
                message TEXT NOT NULL,
                type TEXT DEFAULT 'info',
                link TEXT,
                read INTEGER DEFAULT 0,
                created_at TEXT NOT NULL
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS signer_profiles (
                id TEXT PRIMARY KEY,
                full_name TEXT,
                email TEXT,
                phone TEXT,
                cpf TEXT,
                cnpj TEXT,
                company_name TEXT,
                address TEXT,
                neighborhood TEXT,
                city TEXT,
                state TEXT,
                zip_code TEXT
            )
        """)


# Templates

def insert_template(template: dict) -> str:
    _insert("document_templates", template, or_replace=True)
    return template["id"]


def list_templates(active_only: bool = True) -> List[dict]:
    sql = "SELECT * FROM document_templates"
    if active_only:
        sql += " WHERE is_active = 1"
    return _fetch_all(sql + " ORDER BY created_at DESC")


# Contracts

def insert_contract(contract: dict) -> str:
    _insert("contracts", contract)
    return contract["id"]


def get_contract(contract_id: str) -> Optional[dict]:
    return _fetch_one("SELECT * FROM contracts WHERE id = ?", (contract_id,))


def get_contract_by_token(token: str) -> Optional[dict]:
    return _fetch_one("SELECT * FROM contracts WHERE signature_token = ?", (token,))


def update_unsigned_contract(contract_id: str, fields: dict) -> bool:
    return _update("contracts", contract_id, fields, "AND signature_status != 'signed'") == 1


def mark_signed(contract_id: str, fields: dict) -> bool:
    fields = {**fields, "signature_status": "signed"}
    return _update("contracts", contract_id, fields, "AND signature_status != 'signed'") == 1


def list_contracts_expiring(start: datetime, end: datetime) -> List[dict]:
    return _fetch_all(
        "SELECT * FROM contracts "
        "WHERE signature_status != 'signed' AND signature_token IS NOT NULL "
        "AND token_expires_at >= ? AND token_expires_at < ? "
        "ORDER BY token_expires_at",
        (format_timestamp(start), format_timestamp(end)),
    )


# Audit trail

def insert_audit_event(event: dict) -> str:
    _insert("signature_audit_log", event)
    return event["id"]


def list_audit_events(contract_id: str) -> List[dict]:
    return _fetch_all(
        "SELECT id, contract_id, event_type, created_at, ip_address, user_agent, event_data "
        "FROM signature_audit_log WHERE contract_id = ? ORDER BY created_at, seq",
        (contract_id,),
    )


def get_latest_audit_event(contract_id: str) -> Optional[dict]:
    return _fetch_one(
        "SELECT id, contract_id, event_type, created_at, ip_address, user_agent, event_data "
        "FROM signature_audit_log WHERE contract_id = ? ORDER BY created_at DESC, seq DESC LIMIT 1",
        (contract_id,),
    )


# Certifications

def insert_certification(record: dict) -> bool:
    try:
        _insert("certifications", record)
    except sqlite3.IntegrityError:
        return False
    return True


def get_certification(contract_id: str) -> Optional[dict]:
    return _fetch_one("SELECT * FROM certifications WHERE contract_id = ?", (contract_id,))


def get_certification_by_hash(content_hash: str) -> Optional[dict]:
    return _fetch_one(
        "SELECT * FROM certifications WHERE content_hash = ? LIMIT 1", (content_hash,)
    )


def list_pending_certifications() -> List[dict]:
    return _fetch_all("SELECT * FROM certifications WHERE pending = 1 ORDER BY submitted_at")


# Dispatch log

def insert_dispatch(attempt: dict) -> str:
    _insert("notification_dispatch_logs", attempt)
    return attempt["id"]


def update_dispatch(dispatch_id: str, fields: dict) -> None:
    _update("notification_dispatch_logs", dispatch_id, fields)


def get_dispatch(dispatch_id: str) -> Optional[dict]:
    return _fetch_one("SELECT * FROM notification_dispatch_logs WHERE id = ?", (dispatch_id,))


def find_recent_dispatch(
    event_type: str,
    channel: str,
    recipient_address: str,
    since: datetime,
    contract_id: Optional[str] = None,
) -> Optional[dict]:
    # IS matches NULL contract ids for notifications not tied to a contract
    return _fetch_one(
        "SELECT * FROM notification_dispatch_logs "
        "WHERE event_type = ? AND channel = ? AND recipient_address = ? AND contract_id IS ? "
        "AND created_at >= ? ORDER BY created_at DESC LIMIT 1",
        (event_type, channel, recipient_address, contract_id, format_timestamp(since)),
    )


def list_dispatches(contract_id: str) -> List[dict]:
    return _fetch_all(
        "SELECT * FROM notification_dispatch_logs WHERE contract_id = ? ORDER BY created_at",
        (contract_id,),
    )


# Inbox and profiles

def insert_notification(notification: dict) -> str:
    _insert("notifications", notification)
    return notification["id"]


def get_signer_profile(signer_id: str) -> Optional[dict]:
    return _fetch_one("SELECT * FROM signer_profiles WHERE id = ?", (signer_id,))


def upsert_signer_profile(profile: dict) -> str:
    _insert("signer_profiles", profile, or_replace=True)
    return profile["id"]


def count_rows(table: str) -> int:
    with get_connection() as conn:
        return conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
