"""Signed-content certification models"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class CertificationRecord(BaseModel):
    """Tamper-evidence record for a signed contract.

    One per contract, written once at completion. ``pending`` means no
    timestamp calendar accepted the digest yet; the proof is a placeholder
    and ``tx_id`` only identifies the submission.
    """
    id: Optional[str] = None
    contract_id: str
    content_hash: str                # lowercase hex SHA-256
    network: str
    tx_id: str
    proof: str
    pending: bool = False
    anchor_server: Optional[str] = None
    submitted_at: datetime
    captured_at: datetime
    signer_ip: Optional[str] = None

    @property
    def short_hash(self) -> str:
        return self.content_hash[:16] + "..."


class VerificationStatus(str, Enum):
    VERIFIED = "verified"
    ANCHOR_PENDING = "anchor_pending"
    TAMPERED = "tampered"
    NOT_CERTIFIED = "not_certified"


class VerificationResult(BaseModel):
    """Outcome of recomputing a contract's digest against its record"""
    contract_id: str
    status: VerificationStatus
    expected_hash: Optional[str] = None
    actual_hash: Optional[str] = None
    network: Optional[str] = None
    tx_id: Optional[str] = None
    signed_at: Optional[datetime] = None

    @property
    def intact(self) -> bool:
        return self.status in (VerificationStatus.VERIFIED, VerificationStatus.ANCHOR_PENDING)
