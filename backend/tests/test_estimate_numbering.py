# Overview: Pytest coverage for per-trader estimate numbering.

import re
from types import SimpleNamespace

from estimate_desk.extensions import db
from estimate_desk.models import DocumentSequence
from estimate_desk.services import numbering_service
from estimate_desk.services.numbering_service import (
    DocumentSequenceError,
    allocate_sequence_number,
    format_estimate_number,
    next_estimate_number,
)


class TestFormatting:

    def test_zero_padded_four_digits(self):
        assert format_estimate_number(2025, 1) == "EST-2025-0001"
        assert format_estimate_number(2025, 12345) == "EST-2025-12345"


class TestSequence:

    def test_first_numbers_are_consecutive(self, db_session, trader_a):
        numbers = [next_estimate_number(trader_a.id, year=2025) for _ in range(3)]
        db_session.commit()
        assert numbers == ["EST-2025-0001", "EST-2025-0002", "EST-2025-0003"]

    def test_each_trader_has_own_sequence(self, db_session, trader_a, trader_b):
        a1 = next_estimate_number(trader_a.id, year=2025)
        b1 = next_estimate_number(trader_b.id, year=2025)
        a2 = next_estimate_number(trader_a.id, year=2025)
        db_session.commit()
        assert (a1, b1, a2) == ("EST-2025-0001", "EST-2025-0001", "EST-2025-0002")

    def test_each_year_restarts(self, db_session, trader_a):
        next_estimate_number(trader_a.id, year=2024)
        next_estimate_number(trader_a.id, year=2024)
        assert next_estimate_number(trader_a.id, year=2025) == "EST-2025-0001"
        db_session.commit()

    def test_counter_row_tracks_next_number(self, db_session, trader_a):
        next_estimate_number(trader_a.id, year=2025)
        next_estimate_number(trader_a.id, year=2025)
        db_session.commit()
        seq = db_session.query(DocumentSequence).filter_by(trader_id=trader_a.id, year=2025).one()
        assert seq.next_number == 3
        assert seq.document_type == "ESTIMATE"


class TestFallback:

    def test_allocation_failure_falls_back_to_timestamp_number(self, db_session, trader_a, monkeypatch):
        def _boom(**kwargs):
            raise DocumentSequenceError("sequence unavailable")

        monkeypatch.setattr(numbering_service, "allocate_sequence_number", _boom)

        number = next_estimate_number(trader_a.id, year=2025)
        assert re.fullmatch(r"EST-2025-\d{6}", number)


class TestCounterRowRace:

    def test_concurrent_counter_row_creation_falls_back_to_update(self, db_session, trader_a, monkeypatch):
        """Another request created the counter row between our UPDATE and INSERT."""
        db_session.add(DocumentSequence(trader_id=trader_a.id, document_type="ESTIMATE", year=2025, next_number=5))
        db_session.commit()

        real_execute = db.session.execute
        calls = []

        def execute_missing_row_once(statement, *args, **kwargs):
            calls.append(statement)
            if len(calls) == 1:
                return SimpleNamespace(rowcount=0)
            return real_execute(statement, *args, **kwargs)

        monkeypatch.setattr(db.session, "execute", execute_missing_row_once)

        number = allocate_sequence_number(trader_id=trader_a.id, document_type="ESTIMATE", year=2025)
        db_session.commit()

        assert number == 5
        assert len(calls) == 2
        rows = db_session.query(DocumentSequence).filter_by(trader_id=trader_a.id, year=2025).all()
        assert [r.next_number for r in rows] == [6]
