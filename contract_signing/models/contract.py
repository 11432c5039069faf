"""Contract and signature link models"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel

from contract_signing.models.template import DocumentType


class SignatureStatus(str, Enum):
    """Signature lifecycle states.

    EXPIRED is never stored; it is derived on read when the link's
    expiration has passed on an unsigned contract.
    """
    UNSIGNED = "unsigned"
    LINK_GENERATED = "link_generated"
    SENT = "sent"
    VIEWED = "viewed"
    SIGNED = "signed"
    EXPIRED = "expired"


class SignerSnapshot(BaseModel):
    """Signer identity captured when the contract is generated"""
    name: str
    tax_id: str = ""                 # CPF or CNPJ
    email: Optional[str] = None
    phone: Optional[str] = None
    user_id: Optional[str] = None


class Contract(BaseModel):
    """The signable unit"""
    id: str
    document_type: DocumentType
    subject: str = ""
    template_id: Optional[str] = None
    content: str                               # rendered body, materialized at generation
    variables: Dict[str, str] = {}             # bag used to render, kept for re-templating
    signature_status: SignatureStatus = SignatureStatus.UNSIGNED
    signature_token: Optional[str] = None
    token_expires_at: Optional[datetime] = None
    signer: SignerSnapshot
    is_visible: bool = True
    signed_document: Optional[str] = None      # exact bytes presented at signing (UTF-8 text)
    signature_image: Optional[str] = None
    signed_at: Optional[datetime] = None
    signature_ip: Optional[str] = None
    signature_user_agent: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @property
    def is_signed(self) -> bool:
        return self.signature_status == SignatureStatus.SIGNED

    def is_link_expired(self, now: datetime) -> bool:
        return self.token_expires_at is not None and now >= self.token_expires_at

    def effective_status(self, now: datetime) -> SignatureStatus:
        """Stored status with lazy expiration applied."""
        if self.is_signed:
            return SignatureStatus.SIGNED
        if self.signature_token and self.is_link_expired(now):
            return SignatureStatus.EXPIRED
        return self.signature_status


class SignatureToken(BaseModel):
    """Opaque credential bound 1:1 to a contract"""
    contract_id: str
    token: str
    expires_at: datetime
    url: str

    def is_valid(self, now: datetime) -> bool:
        return now < self.expires_at

    @property
    def prefix(self) -> str:
        return self.token[:8] + "..."
