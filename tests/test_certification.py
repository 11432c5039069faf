"""Tests for certification records and verification"""

import asyncio
import hashlib

import pytest

from contract_signing.errors import (
    AlreadySigned,
    CertificationPending,
    ContractNotFound,
    IntegrityMismatch,
    NotFound,
)
from contract_signing.models.certification import VerificationStatus
from contract_signing.models.template import DocumentType, VariableBag
from contract_signing.services.certification import CertificationRecorder, content_digest

SIGNATURE_PNG = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def recorder(db, anchor, clock):
    return CertificationRecorder(db, anchor=anchor, clock=clock)


@pytest.fixture
def signed(lifecycle, contract_bag, signer):
    contract = lifecycle.create_contract(DocumentType.CONTRACT, VariableBag(values=contract_bag), signer)
    asyncio.run(lifecycle.generate_link(contract.id))
    result = asyncio.run(lifecycle.complete(contract.id, SIGNATURE_PNG, "177.10.0.1"))
    return result


def tamper(db, contract_id, text):
    from contract_signing.db.sqlite import get_connection

    with get_connection() as conn:
        conn.execute("UPDATE contracts SET signed_document = ? WHERE id = ?", (text, contract_id))


def edit_content(contract_id, text):
    from contract_signing.db.sqlite import get_connection

    with get_connection() as conn:
        conn.execute("UPDATE contracts SET content = ? WHERE id = ?", (text, contract_id))


class TestDigest:

    def test_sha256_hex_of_utf8(self):
        text = "Procuração — São Paulo"
        assert content_digest(text) == hashlib.sha256(text.encode("utf-8")).hexdigest()
        assert len(content_digest(text)) == 64

    def test_single_character_changes_digest(self):
        assert content_digest("contrato a") != content_digest("contrato b")


class TestCertify:

    def test_anchored_record(self, recorder, anchor, clock):
        record = asyncio.run(recorder.certify("c-1", "<article>x</article>", "10.0.0.1"))

        assert record.content_hash == content_digest("<article>x</article>")
        assert record.tx_id.startswith("OTS_")
        assert record.network.startswith("Bitcoin")
        assert record.pending is False
        assert record.captured_at == clock.now
        assert anchor.submitted == [record.content_hash]

    def test_pending_when_anchor_down(self, recorder, anchor):
        anchor.available = False
        record = asyncio.run(recorder.certify("c-1", "doc", None))

        assert record.pending is True
        assert (record.network, record.tx_id, record.proof) == ("", "", "")
        assert recorder.list_pending()[0].contract_id == "c-1"

    def test_one_record_per_contract(self, recorder):
        asyncio.run(recorder.certify("c-1", "doc", None))
        with pytest.raises(AlreadySigned):
            asyncio.run(recorder.certify("c-1", "other doc", None))
        assert recorder.get("c-1").content_hash == content_digest("doc")


class TestVerify:

    def test_round_trip(self, lifecycle, signed):
        result = lifecycle.recorder.verify(signed.contract.id)
        assert result.status == VerificationStatus.VERIFIED
        assert result.intact
        assert result.expected_hash == result.actual_hash == signed.certification.content_hash
        assert lifecycle.recorder.ensure_intact(signed.contract.id).status == VerificationStatus.VERIFIED

    def test_tampered(self, lifecycle, db, signed):
        contract = lifecycle.get(signed.contract.id)
        tamper(db, contract.id, contract.signed_document.replace("Café Aurora", "Cafe Aurora", 1))

        result = lifecycle.recorder.verify(contract.id)
        assert result.status == VerificationStatus.TAMPERED
        assert not result.intact
        with pytest.raises(IntegrityMismatch):
            lifecycle.recorder.ensure_intact(contract.id)

    def test_pending_anchor(self, lifecycle, anchor, contract_bag, signer):
        anchor.available = False
        contract = lifecycle.create_contract(DocumentType.PROCURACAO, VariableBag(values=contract_bag), signer)
        asyncio.run(lifecycle.generate_link(contract.id))
        asyncio.run(lifecycle.complete(contract.id, SIGNATURE_PNG, "177.10.0.1"))

        assert lifecycle.recorder.verify(contract.id).status == VerificationStatus.ANCHOR_PENDING
        with pytest.raises(CertificationPending):
            lifecycle.recorder.ensure_intact(contract.id)

    def test_not_certified(self, lifecycle, contract_bag, signer):
        contract = lifecycle.create_contract(DocumentType.CONTRACT, VariableBag(values=contract_bag), signer)
        assert lifecycle.recorder.verify(contract.id).status == VerificationStatus.NOT_CERTIFIED
        with pytest.raises(NotFound):
            lifecycle.recorder.ensure_intact(contract.id)

    def test_unknown_contract(self, recorder):
        with pytest.raises(ContractNotFound):
            recorder.verify("missing")

    def test_find_by_digest(self, lifecycle, signed):
        digest = signed.certification.content_hash
        assert lifecycle.recorder.find_by_digest(digest.upper()).contract_id == signed.contract.id
        with pytest.raises(NotFound):
            lifecycle.recorder.find_by_digest("0" * 64)

    def test_edited_content_is_tampered(self, lifecycle, signed):
        contract_id = signed.contract.id
        edit_content(contract_id, "FORGED CLAUSE")

        result = lifecycle.recorder.verify(contract_id)
        assert result.status == VerificationStatus.TAMPERED
        assert result.expected_hash == result.actual_hash
        with pytest.raises(IntegrityMismatch):
            lifecycle.recorder.ensure_intact(contract_id)

    def test_signed_views_come_from_hashed_document(self, lifecycle, signed):
        from reportlab.platypus import Paragraph

        from contract_signing.services.pdf_generator import SignedDocumentPDF

        contract_id = signed.contract.id
        edit_content(contract_id, "FORGED CLAUSE")
        contract = lifecycle.get(contract_id)

        page = lifecycle.presentation(contract)
        assert "FORGED CLAUSE" not in page
        assert "Café Aurora" in page
        assert page.startswith(contract.signed_document.rsplit("</article>", 1)[0])

        story = SignedDocumentPDF()._build_story(contract, signed.certification, None)
        texts = " ".join(p.getPlainText() for p in story if isinstance(p, Paragraph))
        assert "FORGED CLAUSE" not in texts
        assert "Café Aurora" in texts

    def test_identical_documents_have_distinct_digests(self, lifecycle, contract_bag, signer):
        results = []
        for _ in range(2):
            contract = lifecycle.create_contract(
                DocumentType.CONTRACT, VariableBag(values=contract_bag), signer
            )
            asyncio.run(lifecycle.generate_link(contract.id))
            results.append(asyncio.run(lifecycle.complete(contract.id, SIGNATURE_PNG, "177.10.0.1")))

        first, second = (r.certification for r in results)
        assert first.content_hash != second.content_hash
        assert lifecycle.recorder.find_by_digest(first.content_hash).contract_id == results[0].contract.id
        assert lifecycle.recorder.find_by_digest(second.content_hash).contract_id == results[1].contract.id
