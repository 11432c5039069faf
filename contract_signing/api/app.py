"""FastAPI application factory"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from contract_signing.api.routes.contracts import router as contracts_router
from contract_signing.api.routes.signing import router as signing_router
from contract_signing.errors import (
    CertificationPending,
    ChannelUnavailable,
    ContractSigningError,
    Expired,
    IntegrityMismatch,
    InvalidTransition,
    NotFound,
)
from contract_signing.services.lifecycle import SignatureLifecycle

logger = logging.getLogger(__name__)

# Most specific first
STATUS_CODES = [
    (NotFound, 404),
    (Expired, 410),
    (InvalidTransition, 409),
    (ChannelUnavailable, 422),
    (CertificationPending, 202),
    (IntegrityMismatch, 409),
]


def status_for(error: ContractSigningError) -> int:
    for family, status in STATUS_CODES:
        if isinstance(error, family):
            return status
    return 400


async def contract_error_handler(request: Request, exc: ContractSigningError) -> JSONResponse:
    status = status_for(exc)
    logger.info(f"{request.method} {request.url.path} -> {status} {exc.code}")
    return JSONResponse(status_code=status, content=exc.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    if app.state.lifecycle is None:
        from contract_signing.db.supabase import get_database

        db = get_database()
        db.init_db()
        app.state.lifecycle = SignatureLifecycle(db)
    yield


def create_app(lifecycle: Optional[SignatureLifecycle] = None) -> FastAPI:
    """Create and configure the FastAPI application"""
    app = FastAPI(
        title="WebMarcas Contract Signing API",
        description="Geração, assinatura digital e certificação de contratos e procurações",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.lifecycle = lifecycle

    # CORS: the signing page is served from the public site
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(ContractSigningError, contract_error_handler)
    app.include_router(signing_router)
    app.include_router(contracts_router)

    return app
