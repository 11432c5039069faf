"""Abstract database interface, strategy pattern for SQLite/Supabase switching"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import List, Optional


class DatabaseInterface(ABC):
    """Abstract interface for database operations.
    Implemented by both SQLite and Supabase backends.

    Rows go in and come out as plain dicts. Datetimes may be passed as
    ``datetime`` objects; backends return them as ISO-8601 strings.
    """

    @abstractmethod
    def init_db(self) -> None:
        """Initialize database schema (create tables, indexes)."""

    # Templates (read-only for the resolver)

    @abstractmethod
    def list_templates(self, active_only: bool = True) -> List[dict]:
        """List templates, newest first."""

    @abstractmethod
    def insert_template(self, template: dict) -> str:
        """Insert a template. Returns template ID."""

    # Contracts

    @abstractmethod
    def insert_contract(self, contract: dict) -> str:
        """Insert a new contract. Returns contract ID."""

    @abstractmethod
    def get_contract(self, contract_id: str) -> Optional[dict]:
        """Get contract by ID."""

    @abstractmethod
    def get_contract_by_token(self, token: str) -> Optional[dict]:
        """Get contract by its current signature token."""

    @abstractmethod
    def update_unsigned_contract(self, contract_id: str, fields: dict) -> bool:
        """Update fields of a contract that is not signed. False if signed or absent."""

    @abstractmethod
    def mark_signed(self, contract_id: str, fields: dict) -> bool:
        """Compare-and-set to signed. True only for the call that performed the transition."""

    @abstractmethod
    def list_contracts_expiring(self, start: datetime, end: datetime) -> List[dict]:
        """Unsigned contracts with a token expiring in [start, end)."""

    # Audit trail (insert-only)

    @abstractmethod
    def insert_audit_event(self, event: dict) -> str:
        """Append an audit event. Returns event ID."""

    @abstractmethod
    def list_audit_events(self, contract_id: str) -> List[dict]:
        """Events of a contract in creation order."""

    @abstractmethod
    def get_latest_audit_event(self, contract_id: str) -> Optional[dict]:
        """Most recent event of a contract."""

    # Certifications (insert-only, one per contract)

    @abstractmethod
    def insert_certification(self, record: dict) -> bool:
        """Insert a certification. False if the contract already has one."""

    @abstractmethod
    def get_certification(self, contract_id: str) -> Optional[dict]:
        """Certification of a contract."""

    @abstractmethod
    def get_certification_by_hash(self, content_hash: str) -> Optional[dict]:
        """Find certification by content hash (public verification)."""

    @abstractmethod
    def list_pending_certifications(self) -> List[dict]:
        """Certifications whose anchor is still pending, oldest submission first."""

    # Notification dispatch log

    @abstractmethod
    def insert_dispatch(self, attempt: dict) -> str:
        """Insert a dispatch row. Returns dispatch ID."""

    @abstractmethod
    def update_dispatch(self, dispatch_id: str, fields: dict) -> None:
        """Update status/attempts/error of a dispatch row."""

    @abstractmethod
    def get_dispatch(self, dispatch_id: str) -> Optional[dict]:
        """Get dispatch row by ID."""

    @abstractmethod
    def find_recent_dispatch(
        self,
        event_type: str,
        channel: str,
        recipient_address: str,
        since: datetime,
        contract_id: Optional[str] = None,
    ) -> Optional[dict]:
        """Latest row for (event, channel, address, contract) created at or after ``since``."""

    @abstractmethod
    def list_dispatches(self, contract_id: str) -> List[dict]:
        """Dispatch rows of a contract, oldest first."""

    # In-app inbox and signer profiles

    @abstractmethod
    def insert_notification(self, notification: dict) -> str:
        """Insert an in-app notification. Returns notification ID."""

    @abstractmethod
    def get_signer_profile(self, signer_id: str) -> Optional[dict]:
        """Read signer profile (contact, address, tax ids)."""

    @abstractmethod
    def upsert_signer_profile(self, profile: dict) -> str:
        """Insert or replace a signer profile. Returns profile ID."""

    @abstractmethod
    def get_status(self) -> dict:
        """Get database status info (table counts, connection status)."""
