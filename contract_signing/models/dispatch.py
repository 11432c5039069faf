"""Notification dispatch models"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel


class Channel(str, Enum):
    IN_APP = "in_app"
    SMS = "sms"
    WHATSAPP = "whatsapp"
    EMAIL = "email"


class DispatchStatus(str, Enum):
    SENT = "sent"
    FAILED = "failed"


class NotificationEvent(str, Enum):
    """Business events that trigger a notification"""
    FORM_FILLED = "formulario_preenchido"
    SIGNATURE_LINK = "link_assinatura_gerado"
    SIGNATURE_PENDING = "assinatura_pendente"
    EXPIRATION_REMINDER = "lembrete_expiracao"
    CONTRACT_SIGNED = "contrato_assinado"
    INVOICE_CREATED = "cobranca_gerada"
    INVOICE_OVERDUE = "fatura_vencida"
    PAYMENT_CONFIRMED = "pagamento_confirmado"
    MANUAL = "manual"


class Recipient(BaseModel):
    """Who a notification goes to; each channel needs a different attribute"""
    name: str = ""
    user_id: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    def address_for(self, channel: Channel) -> Optional[str]:
        if channel == Channel.IN_APP:
            return self.user_id or None
        if channel == Channel.EMAIL:
            return self.email or None
        return self.phone or None


class DispatchAttempt(BaseModel):
    """One row per logical (event, channel, recipient) notification"""
    id: str
    event_type: str
    channel: Channel
    status: DispatchStatus
    recipient_address: Optional[str] = None
    recipient: dict = {}
    payload: dict = {}
    contract_id: Optional[str] = None
    attempts: int = 1
    error_message: Optional[str] = None
    response: Optional[dict] = None
    created_at: datetime
    updated_at: datetime

    @property
    def ok(self) -> bool:
        return self.status == DispatchStatus.SENT


class ChannelResult(BaseModel):
    """What a channel adapter reports after one send"""
    success: bool
    error: Optional[str] = None
    response: Optional[dict] = None
