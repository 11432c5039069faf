"""Public signing routes, addressed by token or digest"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Request

from contract_signing.api.schemas import (
    CompleteRequest,
    CompleteResponse,
    SigningPageResponse,
    VerifyResponse,
)
from contract_signing.models.audit import AuditEvent
from contract_signing.services.document_types import get_kind
from contract_signing.services.lifecycle import SignatureLifecycle

logger = logging.getLogger(__name__)

router = APIRouter()


def get_lifecycle(request: Request) -> SignatureLifecycle:
    return request.app.state.lifecycle


def client_ip(request: Request) -> str:
    """First x-forwarded-for entry, then x-real-ip, else "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.headers.get("x-real-ip") or "unknown"


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


@router.get("/sign/{token}", response_model=SigningPageResponse)
async def open_signing_link(
    token: str,
    request: Request,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    """Validate the token and return the document to sign."""
    contract = await lifecycle.record_access(token, client_ip(request), user_agent(request))
    return SigningPageResponse(
        contract_id=contract.id,
        document_type=contract.document_type,
        title=get_kind(contract.document_type).title,
        signature_status=contract.effective_status(lifecycle.clock()),
        expires_at=contract.token_expires_at,
        signer_name=contract.signer.name,
        html=lifecycle.presentation(contract),
    )


@router.post("/sign/{token}/view", response_model=SigningPageResponse)
async def mark_viewed(
    token: str,
    request: Request,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    contract = await lifecycle.record_view(token, client_ip(request), user_agent(request))
    return SigningPageResponse(
        contract_id=contract.id,
        document_type=contract.document_type,
        title=get_kind(contract.document_type).title,
        signature_status=contract.effective_status(lifecycle.clock()),
        expires_at=contract.token_expires_at,
        signer_name=contract.signer.name,
        html=lifecycle.presentation(contract),
    )


@router.post("/sign/{token}/signature-drawn", response_model=AuditEvent)
async def mark_signature_drawn(
    token: str,
    request: Request,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    return await lifecycle.record_signature_drawn(token, client_ip(request), user_agent(request))


@router.post("/sign/{token}/complete", response_model=CompleteResponse)
async def complete_signature(
    token: str,
    body: CompleteRequest,
    request: Request,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    """Sign, certify and notify. Certification never blocks signing."""
    result = await lifecycle.complete_with_token(
        token, body.signature_image, client_ip(request), user_agent(request)
    )
    record = result.certification
    return CompleteResponse(
        contract_id=result.contract.id,
        signature_status=result.contract.signature_status,
        signed_at=result.contract.signed_at,
        content_hash=record.content_hash,
        network=record.network,
        tx_id=record.tx_id,
        pending=record.pending,
        verification_url=lifecycle.verification_url(record.content_hash),
    )


@router.get("/verify/{digest}", response_model=VerifyResponse)
async def verify_digest(
    digest: str,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    """Certification metadata for a content hash, or 404."""
    record = lifecycle.recorder.find_by_digest(digest)
    return VerifyResponse(
        content_hash=record.content_hash,
        network=record.network,
        tx_id=record.tx_id,
        pending=record.pending,
        signed_at=record.captured_at,
        contract_id=record.contract_id,
    )
