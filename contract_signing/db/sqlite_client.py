"""SQLite wrapper implementing DatabaseInterface"""

import logging
from datetime import datetime
from typing import List, Optional

from contract_signing.db.base import DatabaseInterface
from contract_signing.db import sqlite as sqlite_ops
from contract_signing.utils.config import get_settings

logger = logging.getLogger(__name__)

STATUS_TABLES = [
    "document_templates",
    "contracts",
    "signature_audit_log",
    "certifications",
    "notification_dispatch_logs",
]


class SQLiteClient(DatabaseInterface):
    """SQLite implementation of DatabaseInterface.
    Wraps sqlite.py functions."""

    def init_db(self) -> None:
        sqlite_ops.init_db()

    def list_templates(self, active_only: bool = True) -> List[dict]:
        return sqlite_ops.list_templates(active_only)

    def insert_template(self, template: dict) -> str:
        return sqlite_ops.insert_template(template)

    def insert_contract(self, contract: dict) -> str:
        return sqlite_ops.insert_contract(contract)

    def get_contract(self, contract_id: str) -> Optional[dict]:
        return sqlite_ops.get_contract(contract_id)

    def get_contract_by_token(self, token: str) -> Optional[dict]:
        return sqlite_ops.get_contract_by_token(token)

    def update_unsigned_contract(self, contract_id: str, fields: dict) -> bool:
        return sqlite_ops.update_unsigned_contract(contract_id, fields)

    def mark_signed(self, contract_id: str, fields: dict) -> bool:
        return sqlite_ops.mark_signed(contract_id, fields)

    def list_contracts_expiring(self, start: datetime, end: datetime) -> List[dict]:
        return sqlite_ops.list_contracts_expiring(start, end)

    def insert_audit_event(self, event: dict) -> str:
        return sqlite_ops.insert_audit_event(event)

    def list_audit_events(self, contract_id: str) -> List[dict]:
        return sqlite_ops.list_audit_events(contract_id)

    def get_latest_audit_event(self, contract_id: str) -> Optional[dict]:
        return sqlite_ops.get_latest_audit_event(contract_id)

    def insert_certification(self, record: dict) -> bool:
        inserted = sqlite_ops.insert_certification(record)
        if not inserted:
            logger.warning(f"Certification already exists for contract {record.get('contract_id')}")
        return inserted

    def get_certification(self, contract_id: str) -> Optional[dict]:
        return sqlite_ops.get_certification(contract_id)

    def get_certification_by_hash(self, content_hash: str) -> Optional[dict]:
        return sqlite_ops.get_certification_by_hash(content_hash)

    def list_pending_certifications(self) -> List[dict]:
        return sqlite_ops.list_pending_certifications()

    def insert_dispatch(self, attempt: dict) -> str:
        return sqlite_ops.insert_dispatch(attempt)

    def update_dispatch(self, dispatch_id: str, fields: dict) -> None:
        sqlite_ops.update_dispatch(dispatch_id, fields)

    def get_dispatch(self, dispatch_id: str) -> Optional[dict]:
        return sqlite_ops.get_dispatch(dispatch_id)

    def find_recent_dispatch(
        self,
        event_type: str,
        channel: str,
        recipient_address: str,
        since: datetime,
        contract_id: Optional[str] = None,
    ) -> Optional[dict]:
        return sqlite_ops.find_recent_dispatch(
            event_type, channel, recipient_address, since, contract_id
        )

    def list_dispatches(self, contract_id: str) -> List[dict]:
        return sqlite_ops.list_dispatches(contract_id)

    def insert_notification(self, notification: dict) -> str:
        return sqlite_ops.insert_notification(notification)

    def get_signer_profile(self, signer_id: str) -> Optional[dict]:
        return sqlite_ops.get_signer_profile(signer_id)

    def upsert_signer_profile(self, profile: dict) -> str:
        return sqlite_ops.upsert_signer_profile(profile)

    def get_status(self) -> dict:
        settings = get_settings()
        try:
            counts = {table: sqlite_ops.count_rows(table) for table in STATUS_TABLES}
            return {
                "mode": "sqlite",
                "path": settings.database_path,
                **counts,
                "status": "connected",
            }
        except Exception as e:
            return {
                "mode": "sqlite",
                "path": settings.database_path,
                "status": f"error: {e}",
            }
