"""Signature lifecycle: the state machine of a contract's signable link.

Unsigned -> LinkGenerated -> Sent -> Viewed -> Signed, with Expired
derived lazily from the token expiration. This is the only component that
mutates contracts or appends audit events. Mutations of one contract are
serialized with a per-contract asyncio lock; the signed transition is also
a compare-and-set in the database, so two processes cannot both sign.
"""

import asyncio
import logging
import secrets
import uuid
import weakref
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Optional

from pydantic import BaseModel

from contract_signing.db.base import DatabaseInterface
from contract_signing.errors import (
    AlreadySigned,
    ChannelUnavailable,
    ContractNotFound,
    InvalidTransition,
    NotFound,
    TokenExpired,
    TokenNotFound,
)
from contract_signing.models.audit import AuditEvent, AuditEventType
from contract_signing.models.certification import CertificationRecord
from contract_signing.models.contract import (
    Contract,
    SignatureStatus,
    SignatureToken,
    SignerSnapshot,
)
from contract_signing.models.dispatch import (
    Channel,
    DispatchAttempt,
    NotificationEvent,
    Recipient,
)
from contract_signing.models.template import DocumentType, VariableBag
from contract_signing.services.audit import AuditTrail
from contract_signing.services.certification import CertificationRecorder
from contract_signing.services.dispatcher import NotificationDispatcher
from contract_signing.services.document_types import get_kind
from contract_signing.services.templates import TemplateResolver
from contract_signing.services.variables import BrandFacts, SignerProfile, build_variable_bag
from contract_signing.utils.config import Settings, get_settings
from contract_signing.utils.portuguese import format_datetime

logger = logging.getLogger(__name__)

SIGNED_NOTICE_CHANNELS = {Channel.IN_APP, Channel.EMAIL}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def token_prefix(token: Optional[str]) -> str:
    return f"{token[:8]}..." if token else ""


class SignatureRequestResult(BaseModel):
    contract: Contract
    attempts: Dict[Channel, DispatchAttempt]
    event: AuditEvent


class CompletionResult(BaseModel):
    contract: Contract
    certification: CertificationRecord
    notifications: Dict[Channel, DispatchAttempt] = {}


class SignatureLifecycle:
    """Creates contracts and drives them from unsigned to signed."""

    def __init__(
        self,
        db: DatabaseInterface,
        resolver: Optional[TemplateResolver] = None,
        audit: Optional[AuditTrail] = None,
        recorder: Optional[CertificationRecorder] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.settings = settings or get_settings()
        self.clock = clock
        self.resolver = resolver or TemplateResolver(db, settings=self.settings)
        self.audit = audit or AuditTrail(db, clock=clock)
        self.recorder = recorder or CertificationRecorder(db, clock=clock)
        self.dispatcher = dispatcher or NotificationDispatcher(db, settings=self.settings, clock=clock)
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()

    # ---- helpers ----

    def _lock_for(self, contract_id: str) -> asyncio.Lock:
        lock = self._locks.get(contract_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[contract_id] = lock
        return lock

    def _load(self, contract_id: str) -> Contract:
        row = self.db.get_contract(contract_id)
        if not row:
            raise ContractNotFound(contract_id=contract_id)
        return Contract(**row)

    def _load_by_token(self, token: str) -> Contract:
        row = self.db.get_contract_by_token(token) if token else None
        if not row:
            raise TokenNotFound(token=token_prefix(token))
        return Contract(**row)

    def _check_token(self, contract: Contract, now: datetime) -> None:
        """Expired before signed: an expired token is rejected whatever the status."""
        if contract.is_link_expired(now):
            raise TokenExpired(contract_id=contract.id)
        if contract.is_signed:
            raise AlreadySigned(contract_id=contract.id)

    def _update(self, contract: Contract, fields: dict) -> Contract:
        fields = {**fields, "updated_at": self.clock()}
        if not self.db.update_unsigned_contract(contract.id, fields):
            raise AlreadySigned(contract_id=contract.id)
        return contract.model_copy(update=fields)

    def link_url(self, token: str) -> str:
        return f"{self.settings.site_url.rstrip('/')}/sign/{token}"

    def verification_url(self, content_hash: str) -> str:
        return f"{self.settings.site_url.rstrip('/')}/verify/{content_hash}"

    def _recipient(self, contract: Contract) -> Recipient:
        signer = contract.signer
        return Recipient(
            name=signer.name, user_id=signer.user_id, email=signer.email, phone=signer.phone
        )

    # ---- creation ----

    def create_contract(
        self,
        document_type: DocumentType,
        bag: VariableBag,
        signer: SignerSnapshot,
        subject: str = "",
        is_visible: bool = True,
    ) -> Contract:
        """Render the active template and store a new unsigned contract."""
        rendered = self.resolver.resolve(document_type, bag, signer)
        now = self.clock()
        contract = Contract(
            id=str(uuid.uuid4()),
            document_type=rendered.document_type,
            subject=subject,
            template_id=rendered.template_id,
            content=rendered.body,
            variables=bag.values,
            signer=signer,
            is_visible=is_visible,
            created_at=now,
            updated_at=now,
        )
        self.db.insert_contract(contract.model_dump())
        logger.info(
            f"Created {contract.document_type.value} contract {contract.id} "
            f"from template {rendered.template_name!r}"
        )
        return contract

    def create_for_signer(
        self,
        document_type: DocumentType,
        signer_id: str,
        brand: Optional[BrandFacts] = None,
        payment_method: Optional[str] = None,
        extra: Optional[dict] = None,
        subject: str = "",
    ) -> Contract:
        """Build the variable bag from the signer profile source, then create."""
        row = self.db.get_signer_profile(signer_id)
        if not row:
            raise NotFound("Cliente não encontrado", signer_id=signer_id)
        profile = SignerProfile(**row)
        bag = build_variable_bag(
            profile, brand, payment_method, today=self.clock().date(), extra=extra
        )
        subject = subject or (brand.brand_name if brand else "")
        return self.create_contract(document_type, bag, profile.snapshot(), subject=subject)

    async def regenerate_content(self, contract_id: str, bag: Optional[VariableBag] = None) -> Contract:
        """Re-template an unsigned contract, optionally with a new bag."""
        async with self._lock_for(contract_id):
            contract = self._load(contract_id)
            if contract.is_signed:
                raise AlreadySigned(contract_id=contract_id)
            bag = bag or VariableBag(values=contract.variables)
            rendered = self.resolver.resolve(contract.document_type, bag, contract.signer)
            return self._update(contract, {
                "content": rendered.body,
                "template_id": rendered.template_id,
                "variables": bag.values,
            })

    # ---- reads ----

    def get(self, contract_id: str) -> Contract:
        return self._load(contract_id)

    def status(self, contract_id: str) -> SignatureStatus:
        return self._load(contract_id).effective_status(self.clock())

    def presentation(self, contract: Contract, certification: Optional[CertificationRecord] = None) -> str:
        """HTML shown to the signer.

        Once signed this is the stored signed document, the exact bytes
        that were hashed, plus the certification block.
        """
        kind = get_kind(contract.document_type)
        if not contract.is_signed:
            return kind.wrap(contract.content, contract.signer)
        certification = certification or self.recorder.get(contract.id)
        if certification is None:
            return contract.signed_document
        return kind.attach_certification(
            contract.signed_document,
            certification,
            self.verification_url(certification.content_hash),
        )

    # ---- link ----

    async def generate_link(
        self,
        contract_id: str,
        ttl: Optional[timedelta] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SignatureToken:
        """Issue a fresh token, invalidating any previous one.

        After expiry the template is resolved again from the stored variable
        bag, so a late document reflects the current active template.
        """
        ttl = ttl or timedelta(days=self.settings.signature_link_ttl_days)
        async with self._lock_for(contract_id):
            contract = self._load(contract_id)
            if contract.is_signed:
                raise AlreadySigned(contract_id=contract_id)

            now = self.clock()
            fields = {}
            rerendered = contract.effective_status(now) == SignatureStatus.EXPIRED
            if rerendered:
                rendered = self.resolver.resolve(
                    contract.document_type, VariableBag(values=contract.variables), contract.signer
                )
                fields.update(content=rendered.body, template_id=rendered.template_id)

            token = secrets.token_urlsafe(32)
            expires_at = now + ttl
            fields.update(
                signature_token=token,
                token_expires_at=expires_at,
                signature_status=SignatureStatus.LINK_GENERATED,
            )
            self._update(contract, fields)
            self.audit.append(
                contract_id,
                AuditEventType.LINK_GENERATED,
                ip_address=ip_address,
                user_agent=user_agent,
                event_data={
                    "expires_at": expires_at.isoformat(),
                    "expires_in_days": ttl.days,
                    "token_prefix": token_prefix(token),
                    "content_regenerated": rerendered,
                },
            )

        logger.info(f"Link {token_prefix(token)} generated for contract {contract_id}")
        return SignatureToken(
            contract_id=contract_id, token=token, expires_at=expires_at, url=self.link_url(token)
        )

    async def record_access(
        self, token: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> Contract:
        """Validate a token opened by the signer and log the access."""
        contract_id = self._load_by_token(token).id
        async with self._lock_for(contract_id):
            contract = self._load_by_token(token)
            self._check_token(contract, self.clock())
            self.audit.append(
                contract.id,
                AuditEventType.LINK_ACCESSED,
                ip_address=ip_address,
                user_agent=user_agent,
                event_data={"token_prefix": token_prefix(token)},
            )
        return contract

    async def record_view(
        self, token: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> Contract:
        """The signer has the document on screen."""
        contract_id = self._load_by_token(token).id
        async with self._lock_for(contract_id):
            contract = self._load_by_token(token)
            self._check_token(contract, self.clock())
            if contract.signature_status in (
                SignatureStatus.UNSIGNED, SignatureStatus.LINK_GENERATED, SignatureStatus.SENT
            ):
                contract = self._update(contract, {"signature_status": SignatureStatus.VIEWED})
            self.audit.append(
                contract.id,
                AuditEventType.DOCUMENT_VIEWED,
                ip_address=ip_address,
                user_agent=user_agent,
            )
        return contract

    async def record_signature_drawn(
        self, token: str, ip_address: Optional[str] = None, user_agent: Optional[str] = None
    ) -> AuditEvent:
        contract_id = self._load_by_token(token).id
        async with self._lock_for(contract_id):
            contract = self._load_by_token(token)
            self._check_token(contract, self.clock())
            return self.audit.append(
                contract.id,
                AuditEventType.SIGNATURE_DRAWN,
                ip_address=ip_address,
                user_agent=user_agent,
            )

    # ---- request ----

    async def request_signature(
        self,
        contract_id: str,
        channels: Optional[Iterable[Channel]] = None,
        recipient: Optional[Recipient] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SignatureRequestResult:
        """Send the signing link through the dispatcher.

        ``signature_request_sent`` is appended once dispatch was attempted,
        whatever the per-channel outcome. The status moves to Sent only if
        at least one channel delivered.
        """
        async with self._lock_for(contract_id):
            contract = self._load(contract_id)
            if not contract.signature_token:
                raise InvalidTransition(
                    "Gere o link de assinatura antes de enviar a solicitação", contract_id=contract_id
                )
            self._check_token(contract, self.clock())

            kind = get_kind(contract.document_type)
            requested = set(Channel(c) for c in channels) if channels else set(kind.channels_allowed)
            allowed = requested & kind.channels_allowed
            if requested - allowed:
                logger.warning(
                    f"Channels {sorted(c.value for c in requested - allowed)} not allowed for "
                    f"{contract.document_type.value}; skipping"
                )
            if not allowed:
                raise ChannelUnavailable(
                    "Nenhum canal permitido para este tipo de documento",
                    document_type=contract.document_type.value,
                )

            payload = {
                "link": self.link_url(contract.signature_token),
                "marca": contract.subject or contract.variables.get("marca", ""),
                "documento": kind.display_name,
                "expira_em": format_datetime(contract.token_expires_at),
            }
            attempts = await self.dispatcher.dispatch(
                NotificationEvent.SIGNATURE_PENDING.value,
                sorted(allowed, key=lambda c: c.value),
                recipient or self._recipient(contract),
                payload,
                contract_id=contract.id,
            )

            event = self.audit.append(
                contract.id,
                AuditEventType.SIGNATURE_REQUEST_SENT,
                ip_address=ip_address,
                user_agent=user_agent,
                event_data={
                    "channels": {c.value: a.status.value for c, a in attempts.items()},
                    "token_prefix": token_prefix(contract.signature_token),
                },
            )
            if contract.signature_status == SignatureStatus.LINK_GENERATED and any(
                a.ok for a in attempts.values()
            ):
                contract = self._update(contract, {"signature_status": SignatureStatus.SENT})

        return SignatureRequestResult(contract=contract, attempts=attempts, event=event)

    # ---- completion ----

    async def complete(
        self,
        contract_id: str,
        signature_image: str,
        signer_address: Optional[str],
        user_agent: Optional[str] = None,
        token: Optional[str] = None,
    ) -> CompletionResult:
        """Sign the contract.

        The signed document is frozen and certified before the status
        becomes signed, so a signed contract always has its record.
        """
        async with self._lock_for(contract_id):
            contract = self._load(contract_id)
            if token is not None and contract.signature_token != token:
                # rotated while this request waited for the lock
                raise TokenNotFound(token=token_prefix(token))
            now = self.clock()
            self._check_token(contract, now)

            allowed = {SignatureStatus.VIEWED}
            if self.settings.allow_direct_completion:
                allowed |= {SignatureStatus.LINK_GENERATED, SignatureStatus.SENT}
            if contract.signature_status not in allowed:
                raise InvalidTransition(
                    f"Não é possível assinar a partir do estado {contract.signature_status.value}",
                    contract_id=contract_id,
                )
            if not signature_image:
                raise InvalidTransition("Assinatura não informada", contract_id=contract_id)

            kind = get_kind(contract.document_type)
            signed_document = kind.wrap(
                contract.content,
                contract.signer,
                signed=True,
                signature_image=signature_image,
                document_id=contract.id,
            )
            certification = await self.recorder.certify(contract.id, signed_document, signer_address)

            fields = {
                "signed_document": signed_document,
                "signature_image": signature_image,
                "signed_at": now,
                "signature_ip": signer_address,
                "signature_user_agent": user_agent,
                "updated_at": now,
            }
            if not self.db.mark_signed(contract.id, fields):
                raise AlreadySigned(contract_id=contract_id)
            contract = contract.model_copy(
                update={**fields, "signature_status": SignatureStatus.SIGNED}
            )

            self.audit.append(
                contract.id,
                AuditEventType.CONTRACT_SIGNED,
                ip_address=signer_address,
                user_agent=user_agent,
                event_data={
                    "content_hash": certification.content_hash,
                    "network": certification.network,
                    "tx_id": certification.tx_id,
                    "pending": certification.pending,
                },
            )
        logger.info(f"Contract {contract.id} signed ({certification.short_hash})")

        notifications = await self.dispatcher.dispatch(
            NotificationEvent.CONTRACT_SIGNED.value,
            sorted(SIGNED_NOTICE_CHANNELS & kind.channels_allowed, key=lambda c: c.value),
            self._recipient(contract),
            {
                "marca": contract.subject or contract.variables.get("marca", ""),
                "documento": kind.display_name,
                "link": self.verification_url(certification.content_hash),
            },
            contract_id=contract.id,
        )
        return CompletionResult(
            contract=contract, certification=certification, notifications=notifications
        )

    async def complete_with_token(
        self,
        token: str,
        signature_image: str,
        signer_address: Optional[str],
        user_agent: Optional[str] = None,
    ) -> CompletionResult:
        contract = self._load_by_token(token)
        return await self.complete(
            contract.id, signature_image, signer_address, user_agent, token=token
        )
