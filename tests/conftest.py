"""Pytest configuration and fixtures"""

from datetime import datetime, timedelta, timezone

import pytest

from contract_signing.models.contract import SignerSnapshot
from contract_signing.models.dispatch import Channel, ChannelResult
from contract_signing.services.certification import (
    AnchorReceipt,
    AnchorSubmissionError,
    TimestampAnchor,
)
from contract_signing.services.channels import ChannelAdapter

START = datetime(2026, 3, 5, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def test_env(tmp_path, monkeypatch):
    """Set up test environment with temporary database"""
    db_path = tmp_path / "test.db"

    monkeypatch.setenv("DATABASE_PATH", str(db_path))
    monkeypatch.setenv("DB_MODE", "sqlite")
    monkeypatch.setenv("SITE_URL", "https://webmarcas.test")
    for channel in ("SMS", "WHATSAPP", "EMAIL"):
        monkeypatch.setenv(f"{channel}_ENABLED", "false")
    monkeypatch.setenv("GATEWAY_RETRY_BACKOFF_SECONDS", "0")

    from contract_signing.db.sqlite import init_db
    init_db()

    yield

    # Cleanup handled by tmp_path fixture


class FakeClock:
    """Callable clock that only moves when told to"""

    def __init__(self, now: datetime = START):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeAnchor(TimestampAnchor):
    def __init__(self, available: bool = True):
        self.available = available
        self.submitted = []

    async def submit(self, digest: str) -> AnchorReceipt:
        self.submitted.append(digest)
        if not self.available:
            raise AnchorSubmissionError("calendar offline")
        return AnchorReceipt(
            network="Bitcoin (OpenTimestamps via calendar.test)",
            tx_id=f"OTS_1_{digest[:16].upper()}",
            proof="cHJvb2Y=",
            server="https://calendar.test",
        )


class FakeChannel(ChannelAdapter):
    """Records deliveries; can be told to fail, to fail the first N sends, or to raise"""

    def __init__(self, channel: Channel, fail: bool = False, raises: bool = False, enabled: bool = True):
        self.channel = channel
        self.fail = fail
        self.fail_first = 0
        self.raises = raises
        self.enabled = enabled
        self.sent = []

    def is_enabled(self) -> bool:
        return self.enabled

    async def send(self, recipient, message, event_type, payload) -> ChannelResult:
        self.sent.append((recipient.address_for(self.channel), message, event_type))
        if self.raises:
            raise ConnectionError("gateway unreachable")
        if self.fail_first:
            self.fail_first -= 1
            return ChannelResult(success=False, error="HTTP 502")
        if self.fail:
            return ChannelResult(success=False, error="HTTP 503")
        return ChannelResult(success=True, response={"id": f"{self.channel.value}-{len(self.sent)}"})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def db():
    from contract_signing.db.sqlite_client import SQLiteClient
    return SQLiteClient()


@pytest.fixture
def settings():
    from contract_signing.utils.config import get_settings
    return get_settings()


@pytest.fixture
def anchor():
    return FakeAnchor()


@pytest.fixture
def channels():
    return {channel: FakeChannel(channel) for channel in Channel}


@pytest.fixture
def dispatcher(db, channels, settings, clock):
    from contract_signing.services.dispatcher import NotificationDispatcher
    return NotificationDispatcher(db, adapters=channels, settings=settings, clock=clock)


@pytest.fixture
def catalogue(db):
    from contract_signing.services.templates import load_template_catalogue
    return load_template_catalogue(db)


@pytest.fixture
def lifecycle(db, catalogue, anchor, dispatcher, settings, clock):
    from contract_signing.services.audit import AuditTrail
    from contract_signing.services.certification import CertificationRecorder
    from contract_signing.services.lifecycle import SignatureLifecycle

    return SignatureLifecycle(
        db,
        audit=AuditTrail(db, clock=clock),
        recorder=CertificationRecorder(db, anchor=anchor, clock=clock),
        dispatcher=dispatcher,
        settings=settings,
        clock=clock,
    )


@pytest.fixture
def signer():
    return SignerSnapshot(
        name="Ana Silva",
        tax_id="123.456.789-00",
        email="ana@example.com",
        phone="(11) 98765-4321",
        user_id="user-ana",
    )


@pytest.fixture
def contract_bag():
    return {
        "nome_cliente": "Ana Silva",
        "razao_social_ou_nome": "Ana Silva",
        "dados_cnpj": "",
        "endereco_completo": "Rua das Flores, 10, Centro, São Paulo - SP, CEP 01000-000",
        "cpf": "123.456.789-00",
        "cpf_cnpj": "123.456.789-00",
        "email": "ana@example.com",
        "telefone": "(11) 98765-4321",
        "marca": "Café Aurora",
        "ramo_atividade": "Cafeteria",
        "forma_pagamento_detalhada": "• Pagamento à vista via PIX",
        "data_extenso": "5 de março de 2026",
    }
