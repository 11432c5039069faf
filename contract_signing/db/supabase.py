"""Supabase database client implementing DatabaseInterface"""

import logging
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional

from contract_signing.db.base import DatabaseInterface
from contract_signing.utils.config import get_settings

logger = logging.getLogger(__name__)

# Lazy imports to avoid requiring supabase when using sqlite mode
_supabase_client = None
_service_client = None

STATUS_TABLES = [
    "document_templates",
    "contracts",
    "signature_audit_log",
    "certifications",
    "notification_dispatch_logs",
]


def _get_supabase_client():
    """Get or create the singleton Supabase client (anon key)."""
    global _supabase_client
    if _supabase_client is None:
        from supabase import ClientOptions, create_client

        settings = get_settings()
        if not settings.supabase_url or not settings.supabase_key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_KEY must be set when DB_MODE=supabase"
            )
        _supabase_client = create_client(
            settings.supabase_url,
            settings.supabase_key,
            options=ClientOptions(postgrest_client_timeout=10),
        )
    return _supabase_client


def _get_service_client():
    """Get or create the singleton Supabase service-role client (bypasses RLS)."""
    global _service_client
    if _service_client is None:
        from supabase import ClientOptions, create_client

        settings = get_settings()
        key = settings.supabase_service_key or settings.supabase_key
        if not settings.supabase_url or not key:
            raise ValueError(
                "SUPABASE_URL and SUPABASE_SERVICE_KEY must be set for write operations"
            )
        _service_client = create_client(
            settings.supabase_url,
            key,
            options=ClientOptions(postgrest_client_timeout=10),
        )
    return _service_client


def _clean(row: dict) -> dict:
    """Make a row JSON-serializable for PostgREST."""
    data = {}
    for key, value in row.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        data[key] = value
    return data


def _first(result) -> Optional[dict]:
    return result.data[0] if result.data else None


class SupabaseClient(DatabaseInterface):
    """Supabase implementation of DatabaseInterface.

    Reads go through the anon client, writes through the service-role
    client. Audit and certification tables are insert-only under RLS.
    """

    def __init__(self):
        self._read = _get_supabase_client
        self._write = _get_service_client

    def init_db(self) -> None:
        """Verify the schema exists.
        The migration itself is run in the Supabase SQL Editor."""
        client = self._read()
        try:
            client.table("contracts").select("id").limit(1).execute()
            logger.info("Supabase schema verified: tables accessible")
        except Exception as e:
            migration_path = (
                Path(__file__).parent / "migrations" / "001_contract_lifecycle.sql"
            )
            logger.error(
                f"Schema not found. Run migration SQL in Supabase SQL Editor: {migration_path}"
            )
            raise RuntimeError(
                f"Supabase schema not initialized. Run 001_contract_lifecycle.sql in SQL Editor. Error: {e}"
            ) from e

    # Templates

    def list_templates(self, active_only: bool = True) -> List[dict]:
        query = self._read().table("document_templates").select("*")
        if active_only:
            query = query.eq("is_active", True)
        return query.order("created_at", desc=True).execute().data

    def insert_template(self, template: dict) -> str:
        result = self._write().table("document_templates").upsert(_clean(template)).execute()
        return result.data[0]["id"]

    # Contracts

    def insert_contract(self, contract: dict) -> str:
        result = self._write().table("contracts").insert(_clean(contract)).execute()
        return result.data[0]["id"]

    def get_contract(self, contract_id: str) -> Optional[dict]:
        result = self._read().table("contracts").select("*").eq("id", contract_id).execute()
        return _first(result)

    def get_contract_by_token(self, token: str) -> Optional[dict]:
        result = (
            self._read()
            .table("contracts")
            .select("*")
            .eq("signature_token", token)
            .limit(1)
            .execute()
        )
        return _first(result)

    def update_unsigned_contract(self, contract_id: str, fields: dict) -> bool:
        result = (
            self._write()
            .table("contracts")
            .update(_clean(fields))
            .eq("id", contract_id)
            .neq("signature_status", "signed")
            .execute()
        )
        return bool(result.data)

    def mark_signed(self, contract_id: str, fields: dict) -> bool:
        data = _clean({**fields, "signature_status": "signed"})
        result = (
            self._write()
            .table("contracts")
            .update(data)
            .eq("id", contract_id)
            .neq("signature_status", "signed")
            .execute()
        )
        return bool(result.data)

    def list_contracts_expiring(self, start: datetime, end: datetime) -> List[dict]:
        result = (
            self._read()
            .table("contracts")
            .select("*")
            .neq("signature_status", "signed")
            .not_.is_("signature_token", "null")
            .gte("token_expires_at", start.isoformat())
            .lt("token_expires_at", end.isoformat())
            .order("token_expires_at")
            .execute()
        )
        return result.data

    # Audit trail

    def insert_audit_event(self, event: dict) -> str:
        result = self._write().table("signature_audit_log").insert(_clean(event)).execute()
        return result.data[0]["id"]

    def list_audit_events(self, contract_id: str) -> List[dict]:
        result = (
            self._read()
            .table("signature_audit_log")
            .select("*")
            .eq("contract_id", contract_id)
            .order("created_at")
            .execute()
        )
        return result.data

    def get_latest_audit_event(self, contract_id: str) -> Optional[dict]:
        result = (
            self._read()
            .table("signature_audit_log")
            .select("*")
            .eq("contract_id", contract_id)
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _first(result)

    # Certifications

    def insert_certification(self, record: dict) -> bool:
        from postgrest.exceptions import APIError

        try:
            self._write().table("certifications").insert(_clean(record)).execute()
        except APIError as e:
            # 23505 = unique_violation on contract_id
            if e.code == "23505":
                logger.warning(
                    f"Certification already exists for contract {record.get('contract_id')}"
                )
                return False
            raise
        return True

    def get_certification(self, contract_id: str) -> Optional[dict]:
        result = (
            self._read().table("certifications").select("*").eq("contract_id", contract_id).execute()
        )
        return _first(result)

    def get_certification_by_hash(self, content_hash: str) -> Optional[dict]:
        result = (
            self._read()
            .table("certifications")
            .select("*")
            .eq("content_hash", content_hash)
            .limit(1)
            .execute()
        )
        return _first(result)

    def list_pending_certifications(self) -> List[dict]:
        result = (
            self._read()
            .table("certifications")
            .select("*")
            .eq("pending", True)
            .order("submitted_at")
            .execute()
        )
        return result.data

    # Dispatch log

    def insert_dispatch(self, attempt: dict) -> str:
        result = (
            self._write().table("notification_dispatch_logs").insert(_clean(attempt)).execute()
        )
        return result.data[0]["id"]

    def update_dispatch(self, dispatch_id: str, fields: dict) -> None:
        self._write().table("notification_dispatch_logs").update(_clean(fields)).eq(
            "id", dispatch_id
        ).execute()

    def get_dispatch(self, dispatch_id: str) -> Optional[dict]:
        result = (
            self._read()
            .table("notification_dispatch_logs")
            .select("*")
            .eq("id", dispatch_id)
            .execute()
        )
        return _first(result)

    def find_recent_dispatch(
        self,
        event_type: str,
        channel: str,
        recipient_address: str,
        since: datetime,
        contract_id: Optional[str] = None,
    ) -> Optional[dict]:
        query = (
            self._read()
            .table("notification_dispatch_logs")
            .select("*")
            .eq("event_type", event_type)
            .eq("channel", channel)
            .eq("recipient_address", recipient_address)
        )
        if contract_id is None:
            query = query.is_("contract_id", "null")
        else:
            query = query.eq("contract_id", contract_id)
        result = (
            query.gte("created_at", since.isoformat())
            .order("created_at", desc=True)
            .limit(1)
            .execute()
        )
        return _first(result)

    def list_dispatches(self, contract_id: str) -> List[dict]:
        result = (
            self._read()
            .table("notification_dispatch_logs")
            .select("*")
            .eq("contract_id", contract_id)
            .order("created_at")
            .execute()
        )
        return result.data

    # Inbox and profiles

    def insert_notification(self, notification: dict) -> str:
        result = self._write().table("notifications").insert(_clean(notification)).execute()
        return result.data[0]["id"]

    def get_signer_profile(self, signer_id: str) -> Optional[dict]:
        result = self._read().table("signer_profiles").select("*").eq("id", signer_id).execute()
        return _first(result)

    def upsert_signer_profile(self, profile: dict) -> str:
        result = self._write().table("signer_profiles").upsert(_clean(profile)).execute()
        return result.data[0]["id"]

    def get_status(self) -> dict:
        """Get database status info."""
        client = self._read()
        settings = get_settings()
        try:
            counts = {}
            for table in STATUS_TABLES:
                result = client.table(table).select("id", count="exact").execute()
                counts[table] = result.count or 0
            return {
                "mode": "supabase",
                "url": settings.supabase_url,
                **counts,
                "status": "connected",
            }
        except Exception as e:
            return {
                "mode": "supabase",
                "url": settings.supabase_url,
                "status": f"error: {e}",
            }


def get_database(mode: str = None) -> DatabaseInterface:
    """Factory: returns appropriate database implementation.

    mode: 'supabase' or 'sqlite'. Defaults to DB_MODE env var.
    """
    if mode is None:
        mode = get_settings().db_mode

    if mode == "supabase":
        return SupabaseClient()
    else:
        # Import here to avoid circular imports
        from contract_signing.db.sqlite_client import SQLiteClient

        return SQLiteClient()
