"""Tests for multi-channel notification dispatch"""

import asyncio

import pytest

from contract_signing.errors import NotFound
from contract_signing.models.dispatch import Channel, DispatchStatus, NotificationEvent, Recipient
from contract_signing.services.dispatcher import MAX_ATTEMPTS_MESSAGE
from contract_signing.services.messages import build_email_subject, build_message, truncate_sms

EVENT = NotificationEvent.SIGNATURE_PENDING.value
PAYLOAD = {"link": "https://webmarcas.test/sign/abc", "marca": "Aurora", "documento": "Contrato"}


@pytest.fixture
def recipient():
    return Recipient(name="Ana", user_id="user-ana", email="ana@example.com", phone="11987654321")


def run(dispatcher, channels, recipient, payload=PAYLOAD, contract_id="c-1"):
    return asyncio.run(dispatcher.dispatch(EVENT, channels, recipient, payload, contract_id=contract_id))


class TestDispatch:

    def test_every_channel_attempted(self, dispatcher, channels, recipient):
        outcome = run(dispatcher, list(Channel), recipient)

        assert set(outcome) == set(Channel)
        assert all(a.status == DispatchStatus.SENT for a in outcome.values())
        assert channels[Channel.EMAIL].sent[0][0] == "ana@example.com"
        assert channels[Channel.IN_APP].sent[0][0] == "user-ana"
        assert channels[Channel.SMS].sent[0][0] == "11987654321"

    def test_one_failure_does_not_affect_others(self, dispatcher, channels, recipient):
        channels[Channel.WHATSAPP].raises = True
        channels[Channel.SMS].fail = True

        outcome = run(dispatcher, list(Channel), recipient)

        assert outcome[Channel.EMAIL].ok
        assert outcome[Channel.IN_APP].ok
        assert outcome[Channel.WHATSAPP].status == DispatchStatus.FAILED
        assert outcome[Channel.WHATSAPP].error_message == "gateway unreachable"
        assert outcome[Channel.SMS].error_message == "HTTP 503"

    def test_missing_attribute_fails_without_io(self, dispatcher, channels):
        outcome = run(dispatcher, [Channel.SMS, Channel.EMAIL], Recipient(name="Ana", email="ana@example.com"))

        assert outcome[Channel.EMAIL].ok
        assert outcome[Channel.SMS].status == DispatchStatus.FAILED
        assert "phone" in outcome[Channel.SMS].error_message
        assert channels[Channel.SMS].sent == []

    def test_disabled_adapter(self, dispatcher, channels, recipient):
        channels[Channel.EMAIL].enabled = False
        outcome = run(dispatcher, [Channel.EMAIL], recipient)
        assert outcome[Channel.EMAIL].status == DispatchStatus.FAILED
        assert channels[Channel.EMAIL].sent == []

    def test_every_attempt_is_logged(self, dispatcher, channels, recipient):
        channels[Channel.SMS].fail = True
        run(dispatcher, [Channel.EMAIL, Channel.SMS], recipient)

        logged = {d.channel: d for d in dispatcher.list_for_contract("c-1")}
        assert logged[Channel.EMAIL].status == DispatchStatus.SENT
        assert logged[Channel.SMS].status == DispatchStatus.FAILED
        assert logged[Channel.EMAIL].payload["marca"] == "Aurora"

    def test_duplicate_channels_collapse(self, dispatcher, channels, recipient):
        outcome = run(dispatcher, [Channel.EMAIL, Channel.EMAIL], recipient)
        assert list(outcome) == [Channel.EMAIL]
        assert len(channels[Channel.EMAIL].sent) == 1


class TestRetry:

    def test_redispatch_in_window_reuses_row(self, dispatcher, channels, recipient, clock):
        channels[Channel.EMAIL].fail = True
        first = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]

        clock.advance(minutes=5)
        channels[Channel.EMAIL].fail = False
        second = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]

        assert second.id == first.id
        assert second.attempts == 2
        assert second.ok
        assert len(dispatcher.list_for_contract("c-1")) == 1

    def test_redispatch_after_window_is_new(self, dispatcher, recipient, clock, settings):
        first = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]
        clock.advance(minutes=settings.dispatch_retry_window_minutes + 1)
        second = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]

        assert second.id != first.id
        assert second.attempts == 1

    def test_max_attempts(self, dispatcher, channels, recipient, settings):
        channels[Channel.EMAIL].fail = True
        for _ in range(settings.dispatch_max_attempts):
            last = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]
        assert last.attempts == settings.dispatch_max_attempts

        calls = len(channels[Channel.EMAIL].sent)
        capped = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]

        assert capped.status == DispatchStatus.FAILED
        assert capped.error_message == MAX_ATTEMPTS_MESSAGE
        assert len(channels[Channel.EMAIL].sent) == calls
        stored = dispatcher.db.get_dispatch(capped.id)
        assert stored["attempts"] == settings.dispatch_max_attempts

    def test_operator_retry(self, dispatcher, channels, recipient):
        channels[Channel.EMAIL].raises = True
        failed = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]

        channels[Channel.EMAIL].raises = False
        retried = asyncio.run(dispatcher.retry(failed.id))

        assert retried.id == failed.id
        assert retried.ok
        assert retried.attempts == 2
        assert retried.error_message is None

    def test_retry_of_sent_row_is_noop(self, dispatcher, channels, recipient):
        sent = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]
        again = asyncio.run(dispatcher.retry(sent.id))
        assert again.attempts == 1
        assert len(channels[Channel.EMAIL].sent) == 1

    def test_retry_unknown(self, dispatcher):
        with pytest.raises(NotFound):
            asyncio.run(dispatcher.retry("missing"))

    def test_rows_are_per_contract(self, dispatcher, recipient):
        first = run(dispatcher, [Channel.EMAIL], recipient, contract_id="c-1")[Channel.EMAIL]
        second = run(dispatcher, [Channel.EMAIL], recipient, contract_id="c-2")[Channel.EMAIL]

        assert second.id != first.id
        assert second.contract_id == "c-2"
        assert [d.attempts for d in dispatcher.list_for_contract("c-1")] == [1]
        assert [d.id for d in dispatcher.list_for_contract("c-2")] == [second.id]

    def test_cap_on_one_contract_does_not_block_another(self, dispatcher, channels, recipient, settings):
        channels[Channel.EMAIL].fail = True
        for _ in range(settings.dispatch_max_attempts + 1):
            run(dispatcher, [Channel.EMAIL], recipient, contract_id="c-1")

        channels[Channel.EMAIL].fail = False
        other = run(dispatcher, [Channel.EMAIL], recipient, contract_id="c-2")[Channel.EMAIL]
        assert other.ok
        assert other.attempts == 1

    def test_reuse_stores_latest_payload(self, dispatcher, channels, recipient):
        channels[Channel.EMAIL].fail = True
        first = run(dispatcher, [Channel.EMAIL], recipient, payload={**PAYLOAD, "link": "https://webmarcas.test/sign/old"})
        newer = {**PAYLOAD, "link": "https://webmarcas.test/sign/new"}
        run(dispatcher, [Channel.EMAIL], recipient, payload=newer)

        stored = dispatcher.db.get_dispatch(first[Channel.EMAIL].id)
        assert stored["attempts"] == 2
        assert stored["payload"]["link"] == newer["link"]

        channels[Channel.EMAIL].fail = False
        asyncio.run(dispatcher.retry(stored["id"]))
        assert "https://webmarcas.test/sign/new" in channels[Channel.EMAIL].sent[-1][1]

    def test_missing_attribute_repeats_share_row(self, dispatcher, channels):
        nobody = Recipient(name="Ana", email="ana.com")
        for _ in range(3):
            outcome = run(dispatcher, [Channel.SMS], nobody)

        rows = [d for d in dispatcher.list_for_contract("c-1") if d.channel == Channel.SMS]
        assert len(rows) == 1
        assert rows[0].attempts == 3
        assert rows[0].recipient_address == "missing:phone"
        assert outcome[Channel.SMS].status == DispatchStatus.FAILED
        assert channels[Channel.SMS].sent == []


class TestGatewayRetry:

    def test_transient_failure_recovers_in_call(self, dispatcher, channels, recipient):
        channels[Channel.SMS].fail_first = 1

        attempt = run(dispatcher, [Channel.SMS], recipient)[Channel.SMS]

        assert attempt.ok
        assert attempt.attempts == 2
        assert len(channels[Channel.SMS].sent) == 2
        assert dispatcher.db.get_dispatch(attempt.id)["attempts"] == 2

    def test_tries_are_bounded(self, dispatcher, channels, recipient, settings):
        channels[Channel.WHATSAPP].raises = True

        attempt = run(dispatcher, [Channel.WHATSAPP], recipient)[Channel.WHATSAPP]

        assert attempt.status == DispatchStatus.FAILED
        assert attempt.attempts == settings.gateway_retry_count
        assert len(channels[Channel.WHATSAPP].sent) == settings.gateway_retry_count

    def test_tries_respect_max_attempts(self, dispatcher, channels, recipient, settings):
        channels[Channel.SMS].fail = True
        for _ in range(settings.dispatch_max_attempts):
            last = run(dispatcher, [Channel.SMS], recipient)[Channel.SMS]

        assert last.attempts == settings.dispatch_max_attempts
        assert len(channels[Channel.SMS].sent) == settings.dispatch_max_attempts

    def test_email_is_not_retried_in_call(self, dispatcher, channels, recipient):
        channels[Channel.EMAIL].fail_first = 1

        attempt = run(dispatcher, [Channel.EMAIL], recipient)[Channel.EMAIL]

        assert not attempt.ok
        assert attempt.attempts == 1
        assert len(channels[Channel.EMAIL].sent) == 1


class TestMessages:

    def test_signature_pending_text(self):
        message = build_message(EVENT, PAYLOAD, "Ana", "WebMarcas")
        assert message.startswith("WebMarcas: Olá Ana")
        assert PAYLOAD["link"] in message

    def test_custom_message_wins(self):
        assert build_message(EVENT, {"mensagem_custom": "Oi"}, "Ana") == "Oi"

    def test_email_subject(self):
        assert build_email_subject(EVENT, PAYLOAD) == "[WebMarcas] Contrato pendente de assinatura - Aurora"

    def test_sms_truncated(self):
        assert len(truncate_sms("x" * 400)) == 160
