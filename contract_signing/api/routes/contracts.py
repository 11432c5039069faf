"""Staff routes for contracts, links, signature requests and history"""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Request

from contract_signing.api.routes.signing import client_ip, get_lifecycle, user_agent
from contract_signing.api.schemas import (
    AuditResponse,
    ContractCreateRequest,
    ContractResponse,
    HistoryResponse,
    LinkRequest,
    LinkResponse,
    RegenerateRequest,
    SignatureRequestBody,
    SignatureRequestResponse,
)
from contract_signing.models.certification import VerificationResult
from contract_signing.models.dispatch import DispatchAttempt
from contract_signing.models.template import VariableBag
from contract_signing.services.lifecycle import SignatureLifecycle
from contract_signing.services.variables import BrandFacts

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


@router.get("/health")
async def health(lifecycle: SignatureLifecycle = Depends(get_lifecycle)):
    return {"status": "ok", "database": lifecycle.db.get_status()}


@router.post("/contracts", response_model=ContractResponse, status_code=201)
async def create_contract(
    body: ContractCreateRequest,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    """Create from a signer profile (bag assembled server-side) or from an explicit bag."""
    if body.signer_id:
        contract = lifecycle.create_for_signer(
            body.document_type,
            body.signer_id,
            brand=BrandFacts(brand_name=body.brand_name or "", business_area=body.business_area or ""),
            payment_method=body.payment_method,
            extra=body.variables or None,
            subject=body.subject,
        )
    elif body.signer:
        contract = lifecycle.create_contract(
            body.document_type,
            VariableBag(values=body.variables),
            body.signer,
            subject=body.subject,
        )
    else:
        raise HTTPException(status_code=422, detail="Informe signer_id ou signer")
    return ContractResponse.from_contract(contract, lifecycle.clock())


@router.get("/contracts/{contract_id}", response_model=ContractResponse)
async def get_contract(contract_id: str, lifecycle: SignatureLifecycle = Depends(get_lifecycle)):
    return ContractResponse.from_contract(lifecycle.get(contract_id), lifecycle.clock())


@router.post("/contracts/{contract_id}/regenerate", response_model=ContractResponse)
async def regenerate_contract(
    contract_id: str,
    body: RegenerateRequest,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    bag = VariableBag(values=body.variables) if body.variables is not None else None
    contract = await lifecycle.regenerate_content(contract_id, bag)
    return ContractResponse.from_contract(contract, lifecycle.clock())


@router.post("/contracts/{contract_id}/link", response_model=LinkResponse)
async def generate_link(
    contract_id: str,
    body: LinkRequest,
    request: Request,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    ttl = timedelta(days=body.ttl_days) if body.ttl_days else None
    token = await lifecycle.generate_link(contract_id, ttl, client_ip(request), user_agent(request))
    return LinkResponse(
        contract_id=contract_id, token=token.token, url=token.url, expires_at=token.expires_at
    )


@router.post("/contracts/{contract_id}/request-signature", response_model=SignatureRequestResponse)
async def request_signature(
    contract_id: str,
    body: SignatureRequestBody,
    request: Request,
    lifecycle: SignatureLifecycle = Depends(get_lifecycle),
):
    """Per-channel outcome is returned even when every channel failed."""
    result = await lifecycle.request_signature(
        contract_id, body.channels, body.recipient, client_ip(request), user_agent(request)
    )
    return SignatureRequestResponse(
        contract_id=contract_id,
        signature_status=result.contract.signature_status,
        attempts=result.attempts,
    )


@router.get("/contracts/{contract_id}/audit", response_model=AuditResponse)
async def get_audit(contract_id: str, lifecycle: SignatureLifecycle = Depends(get_lifecycle)):
    lifecycle.get(contract_id)
    return AuditResponse(contract_id=contract_id, events=lifecycle.audit.events(contract_id))


@router.get("/contracts/{contract_id}/history", response_model=HistoryResponse)
async def get_history(contract_id: str, lifecycle: SignatureLifecycle = Depends(get_lifecycle)):
    lifecycle.get(contract_id)
    history = await lifecycle.audit.history(contract_id)
    return HistoryResponse(**history.model_dump())


@router.get("/contracts/{contract_id}/verify", response_model=VerificationResult)
async def verify_contract(contract_id: str, lifecycle: SignatureLifecycle = Depends(get_lifecycle)):
    """verified | anchor_pending | tampered | not_certified"""
    return lifecycle.recorder.verify(contract_id)


@router.post("/dispatches/{dispatch_id}/retry", response_model=DispatchAttempt)
async def retry_dispatch(dispatch_id: str, lifecycle: SignatureLifecycle = Depends(get_lifecycle)):
    return await lifecycle.dispatcher.retry(dispatch_id)
