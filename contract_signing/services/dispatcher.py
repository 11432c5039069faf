"""Multi-channel notification dispatcher.

Fans one business event out to independent channels. Every channel
produces exactly one DispatchAttempt; no channel failure escapes
``dispatch``.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from contract_signing.db.base import DatabaseInterface
from contract_signing.errors import ChannelUnavailable, MissingRecipientAttribute, NotFound
from contract_signing.models.dispatch import (
    Channel,
    ChannelResult,
    DispatchAttempt,
    DispatchStatus,
    Recipient,
)
from contract_signing.services.channels import ChannelAdapter, default_adapters
from contract_signing.services.messages import build_message
from contract_signing.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

MAX_ATTEMPTS_MESSAGE = "Limite de tentativas atingido para esta notificação"

REQUIRED_ATTRIBUTE = {
    Channel.IN_APP: "user_id",
    Channel.SMS: "phone",
    Channel.WHATSAPP: "phone",
    Channel.EMAIL: "email",
}

GATEWAY_CHANNELS = frozenset({Channel.SMS, Channel.WHATSAPP})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NotificationDispatcher:
    """Dispatches notifications and keeps one log row per logical notification.

    The logical key is (event_type, channel, recipient address, contract)
    within ``dispatch_retry_window_minutes``; a repeat inside the window is a
    retry of that row and increments its attempt count, up to
    ``dispatch_max_attempts``. SMS and WhatsApp gateways are also retried
    inside one call, each try counted.
    """

    def __init__(
        self,
        db: DatabaseInterface,
        adapters: Optional[Dict[Channel, ChannelAdapter]] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.adapters = adapters if adapters is not None else default_adapters(db, self.settings)
        self.clock = clock

    async def dispatch(
        self,
        event_type: str,
        channels: Iterable[Channel],
        recipient: Recipient,
        payload: Optional[dict] = None,
        contract_id: Optional[str] = None,
    ) -> Dict[Channel, DispatchAttempt]:
        """Attempt every channel concurrently and return the full outcome map."""
        payload = dict(payload or {})
        channels = list(dict.fromkeys(Channel(c) for c in channels))
        message = build_message(event_type, payload, recipient.name, self.settings.brand_name)

        attempts = await asyncio.gather(*[
            self._attempt(event_type, channel, recipient, message, payload, contract_id)
            for channel in channels
        ])
        outcome = dict(zip(channels, attempts))

        sent = [c.value for c, a in outcome.items() if a.ok]
        failed = [c.value for c, a in outcome.items() if not a.ok]
        logger.info(f"Dispatched {event_type}: sent={sent} failed={failed}")
        return outcome

    async def retry(self, dispatch_id: str) -> DispatchAttempt:
        """Operator-triggered retry of one channel on its existing row."""
        row = await asyncio.to_thread(self.db.get_dispatch, dispatch_id)
        if not row:
            raise NotFound("Envio não encontrado", dispatch_id=dispatch_id)
        existing = DispatchAttempt(**row)
        if existing.ok:
            return existing

        recipient = Recipient(**(existing.recipient or {}))
        message = build_message(
            existing.event_type, existing.payload, recipient.name, self.settings.brand_name
        )
        return await self._attempt(
            existing.event_type,
            existing.channel,
            recipient,
            message,
            existing.payload,
            existing.contract_id,
            existing=existing,
        )

    def list_for_contract(self, contract_id: str) -> List[DispatchAttempt]:
        return [DispatchAttempt(**row) for row in self.db.list_dispatches(contract_id)]

    async def _attempt(
        self,
        event_type: str,
        channel: Channel,
        recipient: Recipient,
        message: str,
        payload: dict,
        contract_id: Optional[str],
        existing: Optional[DispatchAttempt] = None,
    ) -> DispatchAttempt:
        address = recipient.address_for(channel)
        # rows for a missing attribute share a stable key so repeats do not fork
        key_address = address or f"missing:{REQUIRED_ATTRIBUTE[channel]}"

        if existing is None:
            since = self.clock() - timedelta(minutes=self.settings.dispatch_retry_window_minutes)
            row = await asyncio.to_thread(
                self.db.find_recent_dispatch,
                event_type, channel.value, key_address, since, contract_id,
            )
            existing = DispatchAttempt(**row) if row else None

        budget = self.settings.dispatch_max_attempts - (existing.attempts if existing else 0)
        if existing is not None and budget <= 0:
            logger.warning(f"Dispatch {existing.id} ({channel.value}) reached max attempts")
            return existing.model_copy(
                update={"status": DispatchStatus.FAILED, "error_message": MAX_ATTEMPTS_MESSAGE}
            )

        if address is None:
            error = MissingRecipientAttribute(
                f"{MissingRecipientAttribute.default_message}: {REQUIRED_ATTRIBUTE[channel]}"
            )
            result, tries = ChannelResult(success=False, error=error.message), 1
        else:
            result, tries = await self._send(channel, recipient, message, event_type, payload, budget)

        return await self._record(
            event_type, channel, recipient, payload, contract_id, key_address, result, existing, tries
        )

    async def _send(
        self,
        channel: Channel,
        recipient: Recipient,
        message: str,
        event_type: str,
        payload: dict,
        budget: int,
    ) -> Tuple[ChannelResult, int]:
        """Send through the adapter; gateway channels get a few tries with linear backoff.

        Returns the last result and how many tries were made.
        """
        adapter = self.adapters.get(channel)
        if adapter is None or not adapter.is_enabled():
            return ChannelResult(
                success=False,
                error=f"{ChannelUnavailable.default_message}: {channel.value} desativado nas configurações",
            ), 1

        tries = 1
        if channel in GATEWAY_CHANNELS:
            tries = max(1, min(self.settings.gateway_retry_count, budget))

        for attempt in range(1, tries + 1):
            try:
                result = await adapter.send(recipient, message, event_type, payload)
            except Exception as e:
                logger.warning(f"Channel {channel.value} failed for {event_type}: {e}")
                result = ChannelResult(success=False, error=str(e) or e.__class__.__name__)
            if result.success or attempt == tries:
                return result, attempt
            logger.info(f"Retrying {channel.value} for {event_type} ({attempt}/{tries}): {result.error}")
            await asyncio.sleep(self.settings.gateway_retry_backoff_seconds * attempt)
        return result, tries

    async def _record(
        self,
        event_type: str,
        channel: Channel,
        recipient: Recipient,
        payload: dict,
        contract_id: Optional[str],
        address: str,
        result: ChannelResult,
        existing: Optional[DispatchAttempt],
        tries: int = 1,
    ) -> DispatchAttempt:
        now = self.clock()
        status = DispatchStatus.SENT if result.success else DispatchStatus.FAILED

        if existing is not None:
            fields = {
                "status": status,
                "attempts": existing.attempts + tries,
                "error_message": result.error,
                "response": result.response,
                "recipient_address": address,
                "recipient": recipient.model_dump(),
                "payload": payload,
                "updated_at": now,
            }
            await asyncio.to_thread(self.db.update_dispatch, existing.id, fields)
            return existing.model_copy(update=fields)

        attempt = DispatchAttempt(
            id=str(uuid.uuid4()),
            event_type=event_type,
            channel=channel,
            status=status,
            recipient_address=address,
            recipient=recipient.model_dump(),
            payload=payload,
            contract_id=contract_id,
            attempts=tries,
            error_message=result.error,
            response=result.response,
            created_at=now,
            updated_at=now,
        )
        await asyncio.to_thread(self.db.insert_dispatch, attempt.model_dump())
        return attempt
