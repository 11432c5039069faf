"""Signature audit trail models"""

from datetime import datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel

from contract_signing.models.certification import CertificationRecord
from contract_signing.models.dispatch import DispatchAttempt


class AuditEventType(str, Enum):
    """Closed set of recorded interactions"""
    LINK_GENERATED = "link_generated"
    LINK_ACCESSED = "link_accessed"
    SIGNATURE_REQUEST_SENT = "signature_request_sent"
    DOCUMENT_VIEWED = "document_viewed"
    SIGNATURE_DRAWN = "signature_drawn"
    CONTRACT_SIGNED = "contract_signed"


EVENT_LABELS = {
    AuditEventType.LINK_GENERATED: "Link gerado",
    AuditEventType.LINK_ACCESSED: "Link acessado",
    AuditEventType.SIGNATURE_REQUEST_SENT: "Solicitação enviada",
    AuditEventType.DOCUMENT_VIEWED: "Documento visualizado",
    AuditEventType.SIGNATURE_DRAWN: "Assinatura desenhada",
    AuditEventType.CONTRACT_SIGNED: "Contrato assinado",
}


class AuditEvent(BaseModel):
    """Immutable record of one interaction with a contract"""
    id: str
    contract_id: str
    event_type: AuditEventType
    created_at: datetime
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    event_data: dict = {}

    @property
    def label(self) -> str:
        return EVENT_LABELS.get(self.event_type, self.event_type.value)


class ContractHistory(BaseModel):
    """Read-only operator view of everything recorded for a contract"""
    contract_id: str
    events: List[AuditEvent] = []
    certification: Optional[CertificationRecord] = None
    dispatches: List[DispatchAttempt] = []
