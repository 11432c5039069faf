"""Data models"""

from contract_signing.models.template import (
    DocumentType,
    DocumentTemplate,
    VariableBag,
    RenderedDocument,
)
from contract_signing.models.contract import (
    SignatureStatus,
    SignerSnapshot,
    Contract,
    SignatureToken,
)
from contract_signing.models.certification import (
    CertificationRecord,
    VerificationStatus,
    VerificationResult,
)
from contract_signing.models.dispatch import (
    Channel,
    DispatchStatus,
    NotificationEvent,
    Recipient,
    DispatchAttempt,
    ChannelResult,
)
from contract_signing.models.audit import (
    AuditEventType,
    AuditEvent,
    ContractHistory,
)
from contract_signing.models.worker import (
    WorkerJob,
    WorkerStatus,
    ReminderRun,
)

__all__ = [
    "DocumentType",
    "DocumentTemplate",
    "VariableBag",
    "RenderedDocument",
    "SignatureStatus",
    "SignerSnapshot",
    "Contract",
    "SignatureToken",
    "CertificationRecord",
    "VerificationStatus",
    "VerificationResult",
    "Channel",
    "DispatchStatus",
    "NotificationEvent",
    "Recipient",
    "DispatchAttempt",
    "ChannelResult",
    "AuditEventType",
    "AuditEvent",
    "ContractHistory",
    "WorkerJob",
    "WorkerStatus",
    "ReminderRun",
]
