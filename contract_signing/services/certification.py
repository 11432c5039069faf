"""Certification of signed content: digest, timestamp anchor, verification"""

import asyncio
import base64
import hashlib
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Callable, List, Optional
from urllib.parse import urlparse

import aiohttp
from pydantic import BaseModel

from contract_signing.db.base import DatabaseInterface
from contract_signing.errors import (
    AlreadySigned,
    CertificationPending,
    ContractNotFound,
    IntegrityMismatch,
    NotFound,
)
from contract_signing.models.certification import (
    CertificationRecord,
    VerificationResult,
    VerificationStatus,
)
from contract_signing.services.document_types import content_section
from contract_signing.utils.config import Settings, get_settings

logger = logging.getLogger(__name__)

OTS_HEADERS = {
    "Content-Type": "application/x-www-form-urlencoded",
    "Accept": "application/vnd.opentimestamps.v1",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def content_digest(content: str) -> str:
    """SHA-256 over the UTF-8 bytes of the signed document, lowercase hex."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


class AnchorReceipt(BaseModel):
    network: str
    tx_id: str
    proof: str
    server: Optional[str] = None


class AnchorSubmissionError(Exception):
    """No timestamp service accepted the digest."""


class TimestampAnchor(ABC):
    @abstractmethod
    async def submit(self, digest: str) -> AnchorReceipt:
        """Submit a hex digest; raise AnchorSubmissionError when nobody accepts it."""


class OpenTimestampsAnchor(TimestampAnchor):
    """Submits digests to public OpenTimestamps calendars, in order."""

    def __init__(self, settings: Optional[Settings] = None, clock: Callable[[], datetime] = _utcnow):
        self.settings = settings or get_settings()
        self.clock = clock

    async def submit(self, digest: str) -> AnchorReceipt:
        timeout = aiohttp.ClientTimeout(total=self.settings.anchor_timeout_seconds)
        errors = []
        async with aiohttp.ClientSession(timeout=timeout) as session:
            for server in self.settings.ots_calendar_servers:
                try:
                    async with session.post(
                        f"{server}/digest", data=bytes.fromhex(digest), headers=OTS_HEADERS
                    ) as response:
                        if response.status != 200:
                            errors.append(f"{server}: HTTP {response.status}")
                            continue
                        proof = await response.read()
                except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                    errors.append(f"{server}: {e.__class__.__name__}")
                    continue

                host = urlparse(server).hostname or server
                millis = int(self.clock().timestamp() * 1000)
                logger.info(f"Digest {digest[:16]}... anchored via {host}")
                return AnchorReceipt(
                    network=f"Bitcoin (OpenTimestamps via {host})",
                    tx_id=f"OTS_{millis}_{digest[:16].upper()}",
                    proof=base64.b64encode(proof).decode("ascii"),
                    server=server,
                )
        raise AnchorSubmissionError("; ".join(errors) or "no calendar servers configured")


class CertificationRecorder:
    """Creates the one certification record of a contract and verifies it later.

    Anchor failures never block signing: the record is stored with empty
    network/transaction fields and ``pending=True`` so a reconciliation job
    can pick it up through ``list_pending``.
    """

    def __init__(
        self,
        db: DatabaseInterface,
        anchor: Optional[TimestampAnchor] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.db = db
        self.anchor = anchor or OpenTimestampsAnchor(clock=clock)
        self.clock = clock

    async def certify(
        self,
        contract_id: str,
        rendered_content: str,
        signer_ip: Optional[str] = None,
    ) -> CertificationRecord:
        digest = content_digest(rendered_content)
        submitted_at = self.clock()

        try:
            receipt = await self.anchor.submit(digest)
            pending = False
        except AnchorSubmissionError as e:
            logger.warning(f"Anchor unavailable for contract {contract_id}, storing as pending: {e}")
            receipt = AnchorReceipt(network="", tx_id="", proof="")
            pending = True

        record = CertificationRecord(
            id=str(uuid.uuid4()),
            contract_id=contract_id,
            content_hash=digest,
            network=receipt.network,
            tx_id=receipt.tx_id,
            proof=receipt.proof,
            pending=pending,
            anchor_server=receipt.server,
            submitted_at=submitted_at,
            captured_at=self.clock(),
            signer_ip=signer_ip,
        )
        inserted = await asyncio.to_thread(self.db.insert_certification, record.model_dump())
        if not inserted:
            raise AlreadySigned(contract_id=contract_id)
        logger.info(f"Certified contract {contract_id}: {record.short_hash} pending={pending}")
        return record

    def get(self, contract_id: str) -> Optional[CertificationRecord]:
        row = self.db.get_certification(contract_id)
        return CertificationRecord(**row) if row else None

    def find_by_digest(self, digest: str) -> CertificationRecord:
        """Public verification lookup."""
        row = self.db.get_certification_by_hash(digest.strip().lower())
        if not row:
            raise NotFound("Nenhum documento certificado com este hash", digest=digest)
        return CertificationRecord(**row)

    def verify(self, contract_id: str) -> VerificationResult:
        """Recompute the digest over the stored signed document and compare.

        The editable ``content`` must also still be the body that was signed.
        """
        contract = self.db.get_contract(contract_id)
        if not contract:
            raise ContractNotFound(contract_id=contract_id)

        record = self.get(contract_id)
        if record is None:
            return VerificationResult(contract_id=contract_id, status=VerificationStatus.NOT_CERTIFIED)

        signed_document = contract.get("signed_document") or ""
        actual = content_digest(signed_document)
        if actual != record.content_hash:
            status = VerificationStatus.TAMPERED
        elif content_section(contract.get("content") or "") not in signed_document:
            # editable body no longer matches what was signed
            logger.warning(f"Contract {contract_id} content differs from its signed document")
            status = VerificationStatus.TAMPERED
        elif record.pending:
            status = VerificationStatus.ANCHOR_PENDING
        else:
            status = VerificationStatus.VERIFIED

        return VerificationResult(
            contract_id=contract_id,
            status=status,
            expected_hash=record.content_hash,
            actual_hash=actual,
            network=record.network or None,
            tx_id=record.tx_id or None,
            signed_at=record.captured_at,
        )

    def ensure_intact(self, contract_id: str) -> VerificationResult:
        """Like verify, but raise for anything other than a confirmed anchor."""
        result = self.verify(contract_id)
        if result.status == VerificationStatus.TAMPERED:
            raise IntegrityMismatch(
                contract_id=contract_id,
                expected=result.expected_hash,
                actual=result.actual_hash,
            )
        if result.status == VerificationStatus.NOT_CERTIFIED:
            raise NotFound("Documento ainda não certificado", contract_id=contract_id)
        if result.status == VerificationStatus.ANCHOR_PENDING:
            raise CertificationPending(contract_id=contract_id)
        return result

    def list_pending(self) -> List[CertificationRecord]:
        return [CertificationRecord(**row) for row in self.db.list_pending_certifications()]
