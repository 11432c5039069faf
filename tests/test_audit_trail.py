"""Tests for the append-only audit trail and contract history"""

import asyncio

from contract_signing.models.audit import AuditEventType
from contract_signing.models.dispatch import Channel, Recipient
from contract_signing.services.audit import AuditTrail


class TestAuditTrail:

    def test_append_and_read(self, db, clock):
        trail = AuditTrail(db, clock=clock)
        event = trail.append(
            "c-1", AuditEventType.LINK_ACCESSED, "10.0.0.1", "Mozilla/5.0", {"token_prefix": "abcd1234..."}
        )

        events = trail.events("c-1")
        assert [e.id for e in events] == [event.id]
        assert events[0].ip_address == "10.0.0.1"
        assert events[0].user_agent == "Mozilla/5.0"
        assert events[0].event_data == {"token_prefix": "abcd1234..."}
        assert events[0].label == "Link acessado"

    def test_same_instant_is_strictly_ordered(self, db, clock):
        trail = AuditTrail(db, clock=clock)
        types = [
            AuditEventType.LINK_GENERATED,
            AuditEventType.LINK_ACCESSED,
            AuditEventType.DOCUMENT_VIEWED,
        ]
        for event_type in types:
            trail.append("c-1", event_type)

        events = trail.events("c-1")
        assert [e.event_type for e in events] == types
        assert events[0].created_at < events[1].created_at < events[2].created_at

    def test_clock_going_backwards(self, db, clock):
        trail = AuditTrail(db, clock=clock)
        first = trail.append("c-1", AuditEventType.LINK_GENERATED)
        clock.advance(seconds=-30)
        second = trail.append("c-1", AuditEventType.LINK_ACCESSED)
        assert second.created_at > first.created_at

    def test_events_are_per_contract(self, db, clock):
        trail = AuditTrail(db, clock=clock)
        trail.append("c-1", AuditEventType.LINK_GENERATED)
        trail.append("c-2", AuditEventType.LINK_GENERATED)
        assert len(trail.events("c-1")) == 1
        assert trail.events("c-3") == []

    def test_history_collects_everything(self, db, clock, dispatcher):
        trail = AuditTrail(db, clock=clock)
        trail.append("c-1", AuditEventType.LINK_GENERATED)
        asyncio.run(dispatcher.dispatch(
            "assinatura_pendente", [Channel.EMAIL], Recipient(name="Ana", email="ana@example.com"),
            {"link": "x"}, contract_id="c-1",
        ))

        history = asyncio.run(trail.history("c-1"))
        assert history.contract_id == "c-1"
        assert len(history.events) == 1
        assert history.certification is None
        assert [d.channel for d in history.dispatches] == [Channel.EMAIL]
