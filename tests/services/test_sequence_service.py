"""
Global counter allocation (SKU series).
"""

import pytest
from sqlalchemy import select, text

from gem_kernel.exceptions import MalformedSequenceError
from gem_kernel.services.sequence_service import SequenceCounter, SequenceService


class TestNextValue:

    def test_first_use_returns_one(self, session):
        assert SequenceService(session).next_value("sku") == 1

    def test_values_are_consecutive(self, session):
        service = SequenceService(session)
        assert [service.next_value("sku") for _ in range(5)] == [1, 2, 3, 4, 5]

    def test_counters_are_independent(self, session):
        service = SequenceService(session)
        service.next_value("a")
        service.next_value("a")
        assert service.next_value("b") == 1
        assert service.next_value("a") == 3

    def test_row_is_created_lazily(self, session):
        service = SequenceService(session)
        assert service.current_value("sku") is None
        service.next_value("sku")
        rows = session.execute(select(SequenceCounter)).scalars().all()
        assert [(r.name, r.current_value) for r in rows] == [("sku", 1)]

    def test_empty_name_rejected(self, session):
        with pytest.raises(ValueError):
            SequenceService(session).next_value("")

    def test_committed_value_survives_new_session(self, session_factory):
        with session_factory() as first:
            SequenceService(first).next_value("sku")
            first.commit()
        with session_factory() as second:
            assert SequenceService(second).next_value("sku") == 2
            second.commit()

    def test_rollback_returns_the_value(self, session_factory):
        with session_factory() as first:
            SequenceService(first).next_value("sku")
            first.commit()
        with session_factory() as aborted:
            assert SequenceService(aborted).next_value("sku") == 2
            aborted.rollback()
        with session_factory() as third:
            assert SequenceService(third).next_value("sku") == 2


class TestStoredState:

    def test_counter_is_trusted_over_anything_else(self, session):
        service = SequenceService(session)
        service.reset("sku", 41)
        assert service.next_value("sku") == 42

    def test_initialize_sequences_creates_zero_counter(self, session):
        service = SequenceService(session)
        service.initialize_sequences()
        service.initialize_sequences()
        assert service.current_value(SequenceService.SKU) == 0
        assert service.next_value(SequenceService.SKU) == 1

    @pytest.mark.parametrize("stored", ["'abc'", "-5", "'7.5'"])
    def test_malformed_counter_fails_loudly(self, session, captured_logs, stored):
        service = SequenceService(session)
        service.next_value("sku")
        session.execute(
            text(f"UPDATE sequence_counters SET current_value = {stored} WHERE name = 'sku'")
        )

        with pytest.raises(MalformedSequenceError) as exc_info:
            service.next_value("sku")

        assert exc_info.value.code == "MALFORMED_SEQUENCE"
        assert any(r["message"] == "sequence_counter_malformed" for r in captured_logs())

    def test_reset_is_logged(self, session, captured_logs):
        SequenceService(session).reset("sku", 10)
        records = [r for r in captured_logs() if r["message"] == "sequence_reset"]
        assert records and records[0]["level"] == "WARNING"
        assert records[0]["value"] == 10
