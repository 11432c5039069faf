"""Request/response schemas for the contract signing API"""

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from contract_signing.models.audit import AuditEvent
from contract_signing.models.certification import CertificationRecord
from contract_signing.models.contract import Contract, SignatureStatus, SignerSnapshot
from contract_signing.models.dispatch import Channel, DispatchAttempt, Recipient
from contract_signing.models.template import DocumentType


class ContractCreateRequest(BaseModel):
    """Create from an explicit bag, or from a signer profile id"""
    document_type: DocumentType
    subject: str = ""
    signer: Optional[SignerSnapshot] = None
    variables: Dict[str, Optional[str]] = {}
    signer_id: Optional[str] = Field(None, description="Signer profile id; builds the variable bag")
    brand_name: Optional[str] = None
    business_area: Optional[str] = None
    payment_method: Optional[str] = Field(None, description="avista | cartao6x | boleto3x")


class RegenerateRequest(BaseModel):
    variables: Optional[Dict[str, Optional[str]]] = None


class LinkRequest(BaseModel):
    ttl_days: Optional[int] = Field(None, ge=1, le=90)


class LinkResponse(BaseModel):
    contract_id: str
    token: str
    url: str
    expires_at: datetime


class SignatureRequestBody(BaseModel):
    channels: Optional[List[Channel]] = None
    recipient: Optional[Recipient] = None


class SignatureRequestResponse(BaseModel):
    contract_id: str
    signature_status: SignatureStatus
    attempts: Dict[Channel, DispatchAttempt]


class ContractResponse(BaseModel):
    """Contract as seen by staff, with lazy expiration applied"""
    id: str
    document_type: DocumentType
    subject: str
    signature_status: SignatureStatus
    token_expires_at: Optional[datetime] = None
    signer: SignerSnapshot
    content: str
    is_visible: bool
    signed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_contract(cls, contract: Contract, now: datetime) -> "ContractResponse":
        return cls(
            id=contract.id,
            document_type=contract.document_type,
            subject=contract.subject,
            signature_status=contract.effective_status(now),
            token_expires_at=contract.token_expires_at,
            signer=contract.signer,
            content=contract.content,
            is_visible=contract.is_visible,
            signed_at=contract.signed_at,
            created_at=contract.created_at,
        )


class SigningPageResponse(BaseModel):
    """What the public signing page needs"""
    contract_id: str
    document_type: DocumentType
    title: str
    signature_status: SignatureStatus
    expires_at: Optional[datetime] = None
    signer_name: str
    html: str


class CompleteRequest(BaseModel):
    signature_image: str = Field(..., min_length=1, description="data:image/png;base64,... of the drawn signature")


class CompleteResponse(BaseModel):
    contract_id: str
    signature_status: SignatureStatus
    signed_at: datetime
    content_hash: str
    network: str
    tx_id: str
    pending: bool
    verification_url: str


class VerifyResponse(BaseModel):
    """Public verification surface"""
    found: bool = True
    content_hash: str
    network: str
    tx_id: str
    pending: bool
    signed_at: datetime
    contract_id: str


class AuditResponse(BaseModel):
    contract_id: str
    events: List[AuditEvent]


class HistoryResponse(BaseModel):
    contract_id: str
    events: List[AuditEvent] = []
    certification: Optional[CertificationRecord] = None
    dispatches: List[DispatchAttempt] = []


class ErrorResponse(BaseModel):
    error: str
    message: str
    details: Optional[dict] = None
