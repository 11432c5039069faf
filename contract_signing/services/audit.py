"""Signature audit trail: append-only, per-contract event log"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional

from contract_signing.db.base import DatabaseInterface
from contract_signing.models.audit import AuditEvent, AuditEventType, ContractHistory
from contract_signing.models.certification import CertificationRecord
from contract_signing.models.dispatch import DispatchAttempt

logger = logging.getLogger(__name__)

ONE_TICK = timedelta(microseconds=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditTrail:
    """Appends and reads audit events.

    Only the signature lifecycle appends. Timestamps are strictly
    increasing per contract: if the clock has not advanced past the last
    event (same microsecond, or a clock step backwards) the new event is
    stamped one microsecond after it.
    """

    def __init__(self, db: DatabaseInterface, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.clock = clock

    def append(
        self,
        contract_id: str,
        event_type: AuditEventType,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        event_data: Optional[dict] = None,
    ) -> AuditEvent:
        created_at = self.clock()
        last = self.db.get_latest_audit_event(contract_id)
        if last:
            last_at = AuditEvent(**last).created_at
            if created_at <= last_at:
                created_at = last_at + ONE_TICK

        event = AuditEvent(
            id=str(uuid.uuid4()),
            contract_id=contract_id,
            event_type=event_type,
            created_at=created_at,
            ip_address=ip_address,
            user_agent=user_agent,
            event_data=event_data or {},
        )
        self.db.insert_audit_event(event.model_dump())
        logger.info(f"Audit {event_type.value} for contract {contract_id}")
        return event

    def events(self, contract_id: str) -> List[AuditEvent]:
        """Events of one contract in order."""
        return [AuditEvent(**row) for row in self.db.list_audit_events(contract_id)]

    async def history(self, contract_id: str) -> ContractHistory:
        """Events, certification and dispatch attempts, fetched concurrently."""
        events, certification, dispatches = await asyncio.gather(
            asyncio.to_thread(self.db.list_audit_events, contract_id),
            asyncio.to_thread(self.db.get_certification, contract_id),
            asyncio.to_thread(self.db.list_dispatches, contract_id),
        )
        return ContractHistory(
            contract_id=contract_id,
            events=[AuditEvent(**row) for row in events],
            certification=CertificationRecord(**certification) if certification else None,
            dispatches=[DispatchAttempt(**row) for row in dispatches],
        )
