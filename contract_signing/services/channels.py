"""Delivery channel adapters.

One adapter per channel. ``send`` reports failures as a ChannelResult
instead of raising; anything that does escape is caught by the
dispatcher and recorded as a failed attempt.
"""

import asyncio
import logging
import smtplib
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.message import EmailMessage
from email.utils import formataddr
from typing import Dict, Optional

import aiohttp

from contract_signing.db.base import DatabaseInterface
from contract_signing.models.dispatch import Channel, ChannelResult, Recipient
from contract_signing.services.messages import (
    build_email_subject,
    notification_severity,
    notification_title,
    truncate_sms,
)
from contract_signing.utils.config import Settings, get_settings
from contract_signing.utils.portuguese import normalize_phone

logger = logging.getLogger(__name__)

ZENVIA_SMS_URL = "https://api.zenvia.com/v2/channels/sms/messages"


class ChannelAdapter(ABC):
    """send(recipient, message) -> ok | error(reason)"""

    channel: Channel

    def is_enabled(self) -> bool:
        return True

    @abstractmethod
    async def send(
        self,
        recipient: Recipient,
        message: str,
        event_type: str,
        payload: dict,
    ) -> ChannelResult:
        ...


class InAppChannel(ChannelAdapter):
    """Inserts a row into the recipient's in-app inbox"""

    channel = Channel.IN_APP

    def __init__(self, db: DatabaseInterface):
        self.db = db

    async def send(self, recipient, message, event_type, payload) -> ChannelResult:
        row = {
            "id": str(uuid.uuid4()),
            "user_id": recipient.user_id,
            "title": notification_title(event_type, payload),
            "message": message,
            "type": notification_severity(event_type),
            "link": payload.get("link"),
            "read": False,
            "created_at": datetime.now(timezone.utc),
        }
        await asyncio.to_thread(self.db.insert_notification, row)
        return ChannelResult(success=True, response={"notification_id": row["id"]})


class _HttpChannel(ChannelAdapter):
    """Shared aiohttp POST for gateway-backed channels"""

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    async def _post_json(self, url: str, body: dict, headers: Dict[str, str], label: str) -> ChannelResult:
        timeout = aiohttp.ClientTimeout(total=self.settings.channel_timeout_seconds)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.post(url, json=body, headers=headers) as response:
                text = await response.text()
                if 200 <= response.status < 300:
                    return ChannelResult(success=True, response={"status": response.status, "body": text[:500]})
                return ChannelResult(success=False, error=f"{label} HTTP {response.status}: {text[:300]}")


class ZenviaSmsChannel(_HttpChannel):
    """SMS via Zenvia REST API"""

    channel = Channel.SMS

    def is_enabled(self) -> bool:
        return self.settings.sms_enabled

    async def send(self, recipient, message, event_type, payload) -> ChannelResult:
        if not self.settings.zenvia_api_key:
            return ChannelResult(success=False, error="API Key Zenvia não configurada")

        body = {
            "from": {"type": "CHANNEL", "number": self.settings.sms_sender_name},
            "to": {"type": "SMS", "number": normalize_phone(recipient.phone)},
            "contents": [{"type": "text", "text": truncate_sms(message)}],
        }
        headers = {
            "Content-Type": "application/json",
            "X-API-TOKEN": self.settings.zenvia_api_key,
        }
        return await self._post_json(ZENVIA_SMS_URL, body, headers, "Zenvia")


class BotConversaWhatsAppChannel(_HttpChannel):
    """WhatsApp via BotConversa inbound webhook"""

    channel = Channel.WHATSAPP

    def is_enabled(self) -> bool:
        return self.settings.whatsapp_enabled

    async def send(self, recipient, message, event_type, payload) -> ChannelResult:
        if not self.settings.botconversa_webhook_url:
            return ChannelResult(success=False, error="URL do Webhook BotConversa não configurada")

        body = {
            "telefone": normalize_phone(recipient.phone),
            "nome": recipient.name or "Cliente",
            "mensagem": message,
            "tipo_notificacao": event_type,
        }
        for key in ("link", "marca", "valor"):
            if payload.get(key):
                body[key] = str(payload[key])

        headers = {"Content-Type": "application/json"}
        if self.settings.botconversa_auth_token:
            headers["Authorization"] = f"Bearer {self.settings.botconversa_auth_token}"
        return await self._post_json(self.settings.botconversa_webhook_url, body, headers, "BotConversa")


class SmtpEmailChannel(ChannelAdapter):
    """Plain-text email over SMTP, sent from a worker thread"""

    channel = Channel.EMAIL

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()

    def is_enabled(self) -> bool:
        return self.settings.email_enabled

    def _build(self, recipient: Recipient, message: str, event_type: str, payload: dict) -> EmailMessage:
        s = self.settings
        email = EmailMessage()
        email["Subject"] = build_email_subject(event_type, payload, s.brand_name)
        email["From"] = formataddr((s.smtp_from_name or s.brand_name, s.smtp_from_email))
        email["To"] = formataddr((recipient.name, recipient.email))
        email.set_content(message)
        return email

    def _deliver(self, email: EmailMessage) -> None:
        s = self.settings
        if s.smtp_port == 465:
            server = smtplib.SMTP_SSL(s.smtp_host, s.smtp_port, timeout=s.channel_timeout_seconds)
        else:
            server = smtplib.SMTP(s.smtp_host, s.smtp_port, timeout=s.channel_timeout_seconds)
        with server:
            if s.smtp_port != 465:
                server.starttls()
            if s.smtp_user:
                server.login(s.smtp_user, s.smtp_password or "")
            server.send_message(email)

    async def send(self, recipient, message, event_type, payload) -> ChannelResult:
        if not self.settings.smtp_host or not self.settings.smtp_from_email:
            return ChannelResult(success=False, error="Servidor SMTP não configurado")
        email = self._build(recipient, message, event_type, payload)
        await asyncio.to_thread(self._deliver, email)
        return ChannelResult(success=True, response={"to": recipient.email})


def default_adapters(db: DatabaseInterface, settings: Optional[Settings] = None) -> Dict[Channel, ChannelAdapter]:
    """All production adapters, keyed by channel"""
    settings = settings or get_settings()
    return {
        Channel.IN_APP: InAppChannel(db),
        Channel.SMS: ZenviaSmsChannel(settings),
        Channel.WHATSAPP: BotConversaWhatsAppChannel(settings),
        Channel.EMAIL: SmtpEmailChannel(settings),
    }
