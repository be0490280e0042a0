from __future__ import annotations

import unittest
from unittest.mock import patch

from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import sessionmaker

from enclotto.lottery import (
    EmptyRound,
    InactiveRound,
    InsufficientPayment,
    InvalidIndex,
    RevealMismatch,
    RoundInactive,
    RoundLedger,
    RoundStillActive,
    Unauthorized,
    commit,
    select_index,
)
from enclotto.models import Base, LedgerEvent, Lottery, TicketTally

FEE = 10**13
OWNER = "owner"


class LedgerTestCase(unittest.TestCase):
    def setUp(self) -> None:
        # In-memory SQLite for isolation
        self.engine = create_engine("sqlite+pysqlite:///:memory:", future=True)
        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(
            bind=self.engine, future=True, expire_on_commit=False
        )

    def tearDown(self) -> None:
        self.engine.dispose()

    def _ledger(self, session, *, numerator: int = 80, listeners=None) -> RoundLedger:
        lottery = Lottery(
            name="test",
            owner=OWNER,
            fee_per_ticket=FEE,
            winner_share_numerator=numerator,
            share_denominator=100,
        )
        session.add(lottery)
        session.flush()
        return RoundLedger(session, lottery, listeners=listeners)

    def _open_ledger(self, session, **kwargs) -> RoundLedger:
        ledger = self._ledger(session, **kwargs)
        ledger.start_new_round(10, caller=OWNER)
        return ledger

    def _enter(self, ledger: RoundLedger, choices, participant: str, payment: int, now: int):
        return ledger.record_entry(commit(choices, participant), payment, participant, now)

    def _event_count(self, session) -> int:
        return session.scalar(select(func.count()).select_from(LedgerEvent))


class RoundLifecycleTests(LedgerTestCase):
    def test_bootstrap_opens_round_one(self) -> None:
        with self.Session() as session:
            ledger = self._ledger(session)
            self.assertEqual(ledger.round_number, 0)
            self.assertFalse(ledger.is_active)

            round_ = ledger.start_new_round(10, caller=OWNER)
            self.assertEqual(round_.round_number, 1)
            self.assertTrue(round_.active)
            self.assertEqual(round_.prize_pool, 0)
            self.assertEqual(round_.started_by, OWNER)
            self.assertEqual(len(round_.secret), 64)
            self.assertEqual(ledger.round_number, 1)
            self.assertEqual(ledger.entry_count, 0)
            self.assertEqual(ledger.fee_per_ticket, FEE)

    def test_cannot_start_round_while_current_is_active(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            with self.assertRaises(RoundStillActive):
                ledger.start_new_round(11, caller=OWNER)
            self.assertEqual(ledger.round_number, 1)

    def test_new_round_after_finalize(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, True, False), "alice", FEE, 11)
            ledger.finalize(0, (True, True, False), caller=OWNER)
            first = ledger.current_round

            second = ledger.start_new_round(20, caller=OWNER)
            self.assertEqual(second.round_number, 2)
            self.assertEqual(second.entries, [])
            self.assertEqual(ledger.prize_pool, 0)
            self.assertTrue(ledger.is_active)
            self.assertNotEqual(second.secret, first.secret)
            self.assertEqual(ledger.tickets_of("alice"), 0)

    def test_reopening_ledger_resumes_latest_round(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (False, False, True), "alice", FEE, 11)

            reopened = RoundLedger(session, ledger.lottery)
            self.assertEqual(reopened.round_number, 1)
            self.assertEqual(reopened.entry_count, 1)
            self.assertEqual(reopened.prize_pool, FEE)

    def test_unpersisted_lottery_is_rejected(self) -> None:
        with self.Session() as session:
            lottery = Lottery(name="x", owner=OWNER, fee_per_ticket=FEE)
            with self.assertRaises(ValueError):
                RoundLedger(session, lottery)


class RecordEntryTests(LedgerTestCase):
    def test_pool_and_entries_accumulate(self) -> None:
        payments = [FEE, 2 * FEE, 5 * FEE + 3, FEE]
        with self.Session() as session:
            ledger = self._open_ledger(session)
            for i, payment in enumerate(payments):
                self._enter(ledger, (True, False, bool(i % 2)), f"player-{i}", payment, 100 + i)

            self.assertEqual(ledger.prize_pool, sum(payments))
            self.assertEqual(ledger.entry_count, len(payments))
            positions = [e.position for e in ledger.current_round.entries]
            self.assertEqual(positions, list(range(len(payments))))

    def test_ticket_count_is_floored_and_tallied(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            first = self._enter(ledger, (True, True, True), "alice", FEE * 5 // 2, 11)
            self.assertEqual(first.ticket_count, 2)
            self._enter(ledger, (False, True, True), "Alice", 3 * FEE, 12)
            self.assertEqual(ledger.tickets_of("alice"), 5)
            self.assertEqual(ledger.tickets_of("bob"), 0)

            tallies = session.scalars(select(TicketTally)).all()
            self.assertEqual(len(tallies), 1)
            self.assertEqual(tallies[0].tickets, 5)

    def test_entry_fields(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            digest = commit((True, False, True), "alice")
            entry = ledger.record_entry(digest.upper(), FEE, " Alice ", 42)
            self.assertEqual(entry.participant, "alice")
            self.assertEqual(entry.commitment, digest)
            self.assertEqual(entry.submitted_at, 42)
            self.assertEqual(entry.payment, FEE)
            self.assertEqual(entry.position, 0)
            self.assertIsNotNone(entry.id)

    def test_insufficient_payment_leaves_state_unchanged(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, True, True), "alice", FEE, 11)
            events_before = self._event_count(session)

            for payment in (0, 1, FEE - 1, -FEE):
                with self.assertRaises(InsufficientPayment):
                    self._enter(ledger, (False, False, False), "bob", payment, 12)

            self.assertEqual(ledger.prize_pool, FEE)
            self.assertEqual(ledger.entry_count, 1)
            self.assertEqual(ledger.tickets_of("bob"), 0)
            self.assertEqual(self._event_count(session), events_before)

    def test_entry_rejected_after_finalize(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, True, True), "alice", FEE, 11)
            ledger.finalize(0, (True, True, True), caller=OWNER)
            with self.assertRaises(InactiveRound):
                self._enter(ledger, (False, False, False), "bob", FEE, 12)
            self.assertEqual(ledger.entry_count, 1)

    def test_entry_rejected_before_first_round(self) -> None:
        with self.Session() as session:
            ledger = self._ledger(session)
            with self.assertRaises(InactiveRound):
                self._enter(ledger, (False, False, False), "bob", FEE, 12)

    def test_submission_time_must_not_go_backwards(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, True, True), "alice", FEE, 50)
            self._enter(ledger, (True, True, False), "bob", FEE, 50)
            with self.assertRaises(ValueError):
                self._enter(ledger, (True, False, False), "carol", FEE, 49)
            self.assertEqual(ledger.entry_count, 2)

    def test_malformed_commitment_is_rejected(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            with self.assertRaises(ValueError):
                ledger.record_entry("abc", FEE, "alice", 11)
            with self.assertRaises(ValueError):
                ledger.record_entry("z" * 64, FEE, "alice", 11)
            with self.assertRaises(TypeError):
                ledger.record_entry(commit((True, True, True), "alice"), 1.5, "alice", 11)  # type: ignore[arg-type]
            self.assertEqual(ledger.entry_count, 0)

    def test_oversized_submission_time_is_rejected(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            with self.assertRaises(ValueError):
                self._enter(ledger, (True, True, True), "alice", FEE, 2**63)
            self.assertEqual(ledger.entry_count, 0)
            self.assertEqual(ledger.prize_pool, 0)

    def test_entries_are_append_only(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            entry = self._enter(ledger, (True, True, True), "alice", FEE, 11)
            entry.ticket_count = 99
            with self.assertRaises(RuntimeError):
                session.flush()
            session.rollback()


class DrawAndFinalizeTests(LedgerTestCase):
    def test_owner_gating(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, True, True), "alice", FEE, 11)
            with self.assertRaises(Unauthorized):
                ledger.draw(1, 2, caller="alice")
            with self.assertRaises(Unauthorized):
                ledger.finalize(0, (True, True, True), caller="alice")
            self.assertTrue(ledger.is_active)
            ledger.finalize(0, (True, True, True), caller=" OWNER ")
            with self.assertRaises(Unauthorized):
                ledger.start_new_round(20, caller="alice")

    def test_draw_matches_selector(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            for i in range(5):
                self._enter(ledger, (True, False, False), f"p{i}", FEE, 11 + i)
            index = ledger.draw(1_700_000_000, 12345, caller=OWNER)
            expected = select_index(1_700_000_000, 12345, 5, ledger.current_round.secret)
            self.assertEqual(index, expected)
            # drawing does not close the round
            self.assertTrue(ledger.is_active)

    def test_draw_and_finalize_on_empty_round(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            with self.assertRaises(EmptyRound):
                ledger.draw(1, 2, caller=OWNER)
            with self.assertRaises(EmptyRound):
                ledger.finalize(0, (True, True, True), caller=OWNER)
            self.assertTrue(ledger.is_active)

    def test_finalize_twice_fails(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            ledger.finalize(0, (True, False, True), caller=OWNER)
            with self.assertRaises(RoundInactive):
                ledger.finalize(0, (True, False, True), caller=OWNER)
            with self.assertRaises(RoundInactive):
                ledger.draw(1, 2, caller=OWNER)

    def test_invalid_index(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            self._enter(ledger, (True, False, False), "bob", FEE, 12)
            for index in (-1, 2, 100):
                with self.assertRaises(InvalidIndex):
                    ledger.finalize(index, (True, False, True), caller=OWNER)
            with self.assertRaises(InvalidIndex):
                ledger.finalize(True, (True, False, True), caller=OWNER)  # type: ignore[arg-type]
            self.assertTrue(ledger.is_active)
            self.assertIsNone(ledger.current_round.winner)

    def test_reveal_mismatch_leaves_round_open(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            events_before = self._event_count(session)
            with self.assertRaises(RevealMismatch):
                ledger.finalize(0, (True, True, True), caller=OWNER)
            self.assertTrue(ledger.is_active)
            self.assertEqual(ledger.winner_history(), [])
            self.assertEqual(self._event_count(session), events_before)

            record = ledger.finalize(0, (True, False, True), caller=OWNER)
            self.assertEqual(record.participant, "alice")

    def test_payout_split(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", 3 * FEE + 7, 11)
            record = ledger.finalize(0, (True, False, True), caller=OWNER)
            pool = 3 * FEE + 7
            self.assertEqual(record.payout, pool * 80 // 100)
            self.assertEqual(record.house_share, pool - record.payout)
            self.assertEqual(record.revealed_choices, (True, False, True))
            self.assertFalse(ledger.is_active)
            self.assertIsNotNone(ledger.current_round.finalized_at)
            # the finalized round keeps its pool as history
            self.assertEqual(ledger.prize_pool, pool)

    def test_custom_payout_split(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session, numerator=50)
            self._enter(ledger, (False, False, False), "alice", 4 * FEE, 11)
            record = ledger.finalize(0, (False, False, False), caller=OWNER)
            self.assertEqual(record.payout, 2 * FEE)
            self.assertEqual(record.house_share, 2 * FEE)

    def test_finalize_records_draw_inputs(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            choices = {}
            for i in range(3):
                choices[f"p{i}"] = (bool(i & 1), bool(i & 2), True)
                self._enter(ledger, choices[f"p{i}"], f"p{i}", FEE, 11 + i)
            index = ledger.draw(1_700_000_000, 2**200, caller=OWNER)
            winner = ledger.current_round.entries[index].participant
            record = ledger.finalize(index, choices[winner], caller=OWNER)
            self.assertEqual(record.block_time, 1_700_000_000)
            self.assertEqual(record.entropy, 2**200)
            self.assertEqual(record.selected_index, index)

    def test_oversized_block_time_is_rejected_before_finalize(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            with self.assertRaises(ValueError):
                ledger.draw(2**63, 5, caller=OWNER)
            self.assertTrue(ledger.is_active)
            self.assertIsNone(ledger.current_round.winner)

            index = ledger.draw(2**63 - 1, 5, caller=OWNER)
            record = ledger.finalize(index, (True, False, True), caller=OWNER)
            self.assertEqual(record.block_time, 2**63 - 1)
            self.assertIsNotNone(record.id)

    def test_failed_finalize_flush_leaves_round_open(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            with patch.object(session, "flush", side_effect=RuntimeError("db down")):
                with self.assertRaises(RuntimeError):
                    ledger.finalize(0, (True, False, True), caller=OWNER)
            self.assertTrue(ledger.is_active)
            self.assertIsNone(ledger.current_round.winner)
            self.assertIsNone(ledger.current_round.finalized_at)

    def test_finalized_round_is_read_only(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            ledger.finalize(0, (True, False, True), caller=OWNER)
            ledger.current_round.prize_pool = 1
            with self.assertRaises(RuntimeError):
                session.flush()
            session.rollback()

    def test_winner_history_spans_rounds(self) -> None:
        with self.Session() as session:
            ledger = self._open_ledger(session)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            ledger.finalize(0, (True, False, True), caller=OWNER)
            ledger.start_new_round(20, caller=OWNER)
            self._enter(ledger, (False, False, True), "bob", 2 * FEE, 21)
            ledger.finalize(0, (False, False, True), caller=OWNER)

            history = ledger.winner_history()
            self.assertEqual([r.participant for r in history], ["alice", "bob"])
            self.assertEqual([r.round.round_number for r in history], [1, 2])


class NotificationTests(LedgerTestCase):
    def test_events_are_persisted_and_delivered(self) -> None:
        received = []
        with self.Session() as session:
            ledger = self._open_ledger(session, listeners=[received.append])
            self._enter(ledger, (True, False, True), "alice", 2 * FEE, 11)
            ledger.finalize(0, (True, False, True), caller=OWNER)

            self.assertEqual(
                [e.kind for e in received],
                ["round_started", "entry_recorded", "winner_drawn"],
            )
            entry_event = received[1]
            self.assertEqual(entry_event.participant, "alice")
            self.assertEqual(entry_event.payload["ticket_count"], 2)
            winner_event = received[2]
            self.assertEqual(winner_event.payload["payout"], str(2 * FEE * 80 // 100))

            stored = session.scalars(select(LedgerEvent).order_by(LedgerEvent.id)).all()
            self.assertEqual([e.kind for e in stored], [e.kind for e in received])
            self.assertTrue(all(e.round_number == 1 for e in stored))

    def test_add_listener(self) -> None:
        received = []
        with self.Session() as session:
            ledger = self._open_ledger(session)
            ledger.add_listener(received.append)
            self._enter(ledger, (True, False, True), "alice", FEE, 11)
            self.assertEqual(len(received), 1)
            self.assertEqual(received[0].kind, "entry_recorded")

    def test_failing_listener_does_not_fail_command(self) -> None:
        received = []

        def broken(event):
            raise RuntimeError("listener exploded")

        with self.Session() as session:
            ledger = self._open_ledger(session)
            ledger.add_listener(broken)
            ledger.add_listener(received.append)
            with self.assertLogs("enclotto.lottery.ledger", level="ERROR") as logs:
                entry = self._enter(ledger, (True, False, True), "alice", FEE, 11)

            self.assertEqual(entry.position, 0)
            self.assertEqual(ledger.entry_count, 1)
            self.assertEqual(ledger.prize_pool, FEE)
            self.assertEqual([e.kind for e in received], ["entry_recorded"])
            self.assertIn("entry_recorded", logs.output[0])


if __name__ == "__main__":
    unittest.main()
