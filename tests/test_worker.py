"""Tests for the expiration reminder worker and PDF export"""

import asyncio
from datetime import timedelta

import pytest

from contract_signing.models.dispatch import Channel
from contract_signing.models.template import DocumentType, VariableBag
from contract_signing.services.pdf_generator import decode_data_url, export_signed_pdf
from contract_signing.services.worker import ReminderWorker

SIGNATURE_PNG = "data:image/png;base64,iVBORw0KGgoAAAANSUhEUgAAAAEAAAABCAYAAAAfFcSJAAAADUlEQVR42mNk+M9QDwADhgGAWjR9awAAAABJRU5ErkJggg=="


@pytest.fixture
def worker(db, dispatcher, settings, clock):
    return ReminderWorker(db=db, dispatcher=dispatcher, settings=settings, clock=clock)


def new_contract(lifecycle, contract_bag, signer, document_type=DocumentType.CONTRACT):
    return lifecycle.create_contract(document_type, VariableBag(values=contract_bag), signer)


class TestReminders:

    def test_reminds_links_about_to_expire(self, lifecycle, worker, contract_bag, signer, channels, settings):
        days = settings.reminder_days_before
        due = new_contract(lifecycle, contract_bag, signer)
        later = new_contract(lifecycle, contract_bag, signer)
        asyncio.run(lifecycle.generate_link(due.id, ttl=timedelta(days=days, hours=-12)))
        asyncio.run(lifecycle.generate_link(later.id, ttl=timedelta(days=days + 3)))

        assert [c.id for c in worker.find_expiring()] == [due.id]

        run = asyncio.run(worker.send_reminders())
        assert run.contracts_found == 1
        assert run.reminders_sent == 1
        assert channels[Channel.EMAIL].sent[0][2] == "lembrete_expiracao"
        assert channels[Channel.SMS].sent == []

    def test_signed_contracts_are_skipped(self, lifecycle, worker, contract_bag, signer, settings):
        contract = new_contract(lifecycle, contract_bag, signer)
        asyncio.run(lifecycle.generate_link(contract.id, ttl=timedelta(days=settings.reminder_days_before, hours=-1)))
        asyncio.run(lifecycle.complete(contract.id, SIGNATURE_PNG, "1.1.1.1"))

        assert worker.find_expiring() == []

    def test_rerun_reuses_dispatch_rows(self, lifecycle, worker, contract_bag, signer, settings):
        contract = new_contract(lifecycle, contract_bag, signer)
        asyncio.run(lifecycle.generate_link(contract.id, ttl=timedelta(days=settings.reminder_days_before, hours=-1)))

        asyncio.run(worker.send_reminders())
        asyncio.run(worker.send_reminders())

        reminders = [
            d for d in lifecycle.dispatcher.list_for_contract(contract.id)
            if d.event_type == "lembrete_expiracao"
        ]
        assert len(reminders) == 3  # email, whatsapp, in_app
        assert all(d.attempts == 2 for d in reminders)

    def test_status_before_start(self, worker):
        status = worker.get_status()
        assert status.is_running is False
        assert status.jobs == []


class TestPdfExport:

    def test_decode_data_url(self):
        assert decode_data_url(SIGNATURE_PNG).startswith(b"\x89PNG")
        assert decode_data_url("not a data url") is None
        assert decode_data_url(None) is None

    def test_export_signed(self, lifecycle, contract_bag, signer, tmp_path):
        contract = new_contract(lifecycle, contract_bag, signer)
        asyncio.run(lifecycle.generate_link(contract.id))
        result = asyncio.run(lifecycle.complete(contract.id, SIGNATURE_PNG, "1.1.1.1"))

        output = tmp_path / "out" / "signed.pdf"
        path = export_signed_pdf(
            result.contract,
            result.certification,
            str(output),
            lifecycle.verification_url(result.certification.content_hash),
        )

        assert path == str(output)
        assert output.read_bytes().startswith(b"%PDF")

    def test_export_distrato_unsigned(self, lifecycle, contract_bag, signer, tmp_path):
        contract = new_contract(lifecycle, contract_bag, signer, DocumentType.DISTRATO_MULTA)
        output = tmp_path / "distrato.pdf"
        export_signed_pdf(contract, None, str(output))
        assert output.exists()
