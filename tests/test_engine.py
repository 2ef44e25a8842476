"""End-to-end tests for the transfer matching engine."""

import logging
import random

import pytest

from transfer_engine.matching.boundary import BoundaryConfig
from transfer_engine.matching.candidates import generate_candidates
from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.engine import (
    TransferMatchingEngine,
    filter_results,
    match_transfers,
)
from transfer_engine.matching.models import (
    HintTag,
    IgnoredReason,
    KpiEffect,
    MatchState,
    PenaltyTag,
    TransferDecision,
    make_match_id,
)
from transfer_engine.normalization.models import AccountMeta


@pytest.fixture
def engine():
    return TransferMatchingEngine(MatchingConfig())


@pytest.fixture
def mixed_records(make_record):
    """A realistic month: two transfers, a near-tie, a bill and a salary."""
    return [
        make_record("e1", -5000, "2024-03-01", "A", "Transfer to savings", source_id="f1"),
        make_record("s1", 5000, "2024-03-02", "B", "Transfer from everyday", source_id="f2"),
        make_record("e2", -10000, "2024-03-05", "A", "Transfer to holiday", source_id="f1"),
        make_record("h1", 10000, "2024-03-05", "C", "Transfer from everyday", source_id="f3"),
        make_record("h2", 10000, "2024-03-06", "C", "Transfer from everyday", source_id="f3"),
        make_record("b1", -8900, "2024-03-10", "A", "TELSTRA BILL", source_id="f1"),
        make_record("r1", 8900, "2024-03-10", "B", "Refund", source_id="f2"),
        make_record("p1", 350000, "2024-03-15", "A", "SALARY ACME PTY", source_id="f1"),
        make_record("w1", -2000, "2024-03-20", "A", "Withdrawal", source_id="f1"),
        make_record("d1", 2000, "2024-03-27", "B", "Deposit", source_id="f2"),
    ]


class TestScenarios:
    """Worked examples of the boundary decisions."""

    def test_same_account_transfer_inside_boundary(self, engine, make_record):
        records = [
            make_record("t-out", -5000, "2024-03-01", "A", "Transfer to savings", source_id="f1"),
            make_record("t-in", 5000, "2024-03-02", "A", "Transfer from everyday", source_id="f1"),
        ]
        report = engine.run(records, boundary=BoundaryConfig(account_ids=["A"]))

        assert len(report.results) == 1
        result = report.results[0]
        assert result.state is MatchState.MATCHED
        assert result.decision is TransferDecision.INTERNAL_OFFSET
        assert result.kpi_effect is KpiEffect.EXCLUDED
        assert result.same_file is True

        annotations = report.annotations()
        assert set(annotations) == {"t-out", "t-in"}
        for annotation in annotations.values():
            assert annotation.kpi_effect is KpiEffect.EXCLUDED
            assert annotation.match_id == result.match_id

    def test_both_accounts_inside_boundary(self, engine, transfer_pair):
        report = engine.run(transfer_pair, boundary=BoundaryConfig(account_ids=["A", "B"]))

        result = report.results[0]
        assert result.state is MatchState.MATCHED
        assert result.decision is TransferDecision.INTERNAL_OFFSET
        assert result.kpi_effect is KpiEffect.EXCLUDED
        assert result.same_file is False

    def test_incoming_account_outside_boundary(self, engine, transfer_pair):
        report = engine.run(transfer_pair, boundary=BoundaryConfig(account_ids=["A"]))

        result = report.results[0]
        assert result.decision is TransferDecision.BOUNDARY_FLOW
        assert result.kpi_effect is KpiEffect.INCLUDED
        assert report.stats.excluded_amount_minor == 0

    def test_one_debit_two_close_credits_is_one_collision(self, engine, make_record):
        records = [
            make_record("d", -10000, "2024-03-01", "A", "Transfer to savings"),
            make_record("c1", 10000, "2024-03-01", "B", "Transfer from everyday"),
            make_record("c2", 10000, "2024-03-02", "B", "Transfer from everyday"),
        ]
        report = engine.run(records, boundary=BoundaryConfig(account_ids=["A", "B"]))

        assert len(report.collisions) == 1
        bucket = report.collisions[0]
        assert bucket.amount_minor == 10000
        assert str(bucket.date) == "2024-03-01"
        assert bucket.transaction_ids == ["c1", "c2", "d"]

        assert len(bucket.suggested) == 1
        suggestion = bucket.suggested[0]
        assert suggestion.contended_id == "d"
        assert suggestion.in_id == "c1"
        assert suggestion.second_best_score is not None
        assert suggestion.best_score > suggestion.second_best_score

        # The near-tie costs confidence, so no offset is taken
        assert len(report.results) == 1
        result = report.results[0]
        assert result.in_leg.transaction_id == "c1"
        assert result.state is MatchState.UNCERTAIN
        assert PenaltyTag.AMBIGUOUS_MULTI_CANDIDATE in result.explanation.penalties
        assert report.uncertain() == [result]
        assert report.matched() == []
        assert result.decision is TransferDecision.UNCERTAIN_NO_OFFSET

        assert [i.reason for i in report.ignored] == [IgnoredReason.LEG_ALREADY_ASSIGNED]
        assert "c2" not in report.annotations()

    def test_low_scoring_pair_is_not_emitted(self, engine, make_record):
        records = [
            make_record("o", -5000, "2024-03-01", "A", "Withdrawal"),
            make_record("i", 5000, "2024-03-01", "B", "Deposit"),
        ]
        report = engine.run(records, boundary=BoundaryConfig(account_ids=["A", "B"]))

        assert report.results == []
        assert report.annotations() == {}
        assert len(report.ignored) == 1
        assert report.ignored[0].reason is IgnoredReason.LOW_CONFIDENCE
        assert report.stats.ignored_pairs == 1


class TestProperties:
    """Invariants that hold for any input."""

    def test_no_transaction_in_two_matched_results(self, engine, make_record):
        records = [
            make_record("d1", -10000, "2024-03-01", "A", "Transfer to savings"),
            make_record("d2", -10000, "2024-03-01", "C", "Transfer to savings"),
            make_record("c1", 10000, "2024-03-01", "B", "Transfer from everyday"),
            make_record("c2", 10000, "2024-03-02", "B", "Transfer from everyday"),
            make_record("c3", 10000, "2024-03-02", "D", "Transfer from cheque"),
        ]
        report = engine.run(records)

        seen = []
        for result in report.results:
            seen.extend([result.out_leg.transaction_id, result.in_leg.transaction_id])
        assert len(seen) == len(set(seen))

    def test_match_id_is_order_independent(self):
        assert make_match_id("tx-1", "tx-2") == make_match_id("tx-2", "tx-1")
        assert make_match_id("tx-1", "tx-2") != make_match_id("tx-1", "tx-3")

    def test_raising_min_matched_never_promotes(self, mixed_records):
        states = []
        for min_matched in (0.5, 0.7, 0.85, 0.9, 0.95, 1.0):
            config = MatchingConfig.from_raw(min_matched=min_matched, min_uncertain=0.3)
            report = TransferMatchingEngine(config).run(mixed_records)
            states.append({r.match_id for r in report.matched()})

        for looser, stricter in zip(states, states[1:]):
            assert stricter <= looser

    def test_widening_window_only_adds_candidates(self, mixed_records):
        previous = set()
        for window in range(0, 8):
            config = MatchingConfig.from_raw(window_days=window)
            pairs = {p.match_id for p in generate_candidates(mixed_records, config)}
            assert previous <= pairs
            previous = pairs

        # w1/d1 are seven days apart
        assert make_match_id("w1", "d1") in previous

    def test_empty_boundary_never_offsets(self, engine, mixed_records):
        report = engine.run(mixed_records, boundary=BoundaryConfig())

        assert report.results
        assert all(r.decision is not TransferDecision.INTERNAL_OFFSET for r in report.results)
        assert report.stats.excluded_transaction_count == 0

    def test_input_order_does_not_change_output(self, engine, mixed_records):
        boundary = BoundaryConfig(account_ids=["A", "B", "C"])
        expected = engine.run(mixed_records, boundary=boundary).model_dump()

        shuffled = list(mixed_records)
        random.Random(7).shuffle(shuffled)
        assert engine.run(shuffled, boundary=boundary).model_dump() == expected

    def test_records_are_not_modified(self, engine, transfer_pair):
        before = [r.model_dump() for r in transfer_pair]
        engine.run(transfer_pair, boundary=BoundaryConfig(account_ids=["A", "B"]))
        assert [r.model_dump() for r in transfer_pair] == before


class TestStats:
    def test_excluded_totals_count_both_legs(self, engine, transfer_pair):
        report = engine.run(transfer_pair, boundary=BoundaryConfig(account_ids=["A", "B"]))
        stats = report.stats

        assert stats.transaction_count == 2
        assert stats.candidate_count == 1
        assert stats.matched_pairs == 1
        assert stats.internal_offset_pairs == 1
        assert stats.excluded_transaction_count == 2
        assert stats.excluded_amount_minor == 10000
        assert stats.missing_identity_closure_pairs == 1

    def test_top_hints_and_penalties(self, engine, mixed_records):
        stats = engine.run(mixed_records).stats

        hint_names = [name for name, _ in stats.top_hints]
        assert HintTag.TRANSFER_KEYWORD_BOTH.value in hint_names
        counts = [count for _, count in stats.top_hints]
        assert counts == sorted(counts, reverse=True)
        assert stats.collision_buckets == 1


class TestIdentityClosures:
    def test_account_key_closure_lifts_one_sided_wording(self, engine, make_record):
        records = [
            make_record("o", -5000, "2024-03-01", "A", "Transfer to 062-000 12345678"),
            make_record("i", 5000, "2024-03-02", "B", "Deposit"),
        ]
        meta = [AccountMeta(bank_id="cba", account_id="B", bsb="062000", account_number="12345678")]
        report = engine.run(records, boundary=BoundaryConfig(account_ids=["A", "B"]), account_meta=meta)

        result = report.results[0]
        assert HintTag.ACCOUNT_KEY_OUT_TO_IN in result.explanation.hints
        assert result.state is MatchState.MATCHED
        assert result.decision is TransferDecision.INTERNAL_OFFSET

    def test_account_meta_on_boundary_is_used(self, engine, make_record):
        records = [
            make_record("o", -5000, "2024-03-01", "A", "Transfer to JANE SMITH"),
            make_record("i", 5000, "2024-03-01", "B", "Deposit"),
        ]
        boundary = BoundaryConfig(
            account_ids=["A", "B"],
            account_meta=[AccountMeta(bank_id="cba", account_id="B", account_name="Jane Smith")],
        )
        result = engine.run(records, boundary=boundary).results[0]

        assert HintTag.NAME_OUT_TO_IN in result.explanation.hints
        assert result.state is MatchState.MATCHED


def test_duplicate_ids_keep_first(engine, make_record, caplog):
    records = [
        make_record("x", -5000, "2024-03-01", "A", "Transfer to savings"),
        make_record("x", -7000, "2024-03-01", "A", "Transfer to savings"),
        make_record("y", 5000, "2024-03-01", "B", "Transfer from everyday"),
    ]
    with caplog.at_level(logging.WARNING, logger="transfer_engine.matching.engine"):
        report = engine.run(records)

    assert report.stats.transaction_count == 2
    assert report.results[0].amount_minor == 5000
    assert "Duplicate transaction id x" in caplog.text


def test_match_transfers_uses_settings(monkeypatch, transfer_pair):
    monkeypatch.setenv("TRANSFER_MIN_MATCHED", "0.99")
    report = match_transfers(transfer_pair, boundary=BoundaryConfig(account_ids=["A", "B"]))

    assert report.config.min_matched == pytest.approx(0.99)
    assert report.results[0].state is MatchState.UNCERTAIN
    assert report.results[0].decision is TransferDecision.UNCERTAIN_NO_OFFSET


class TestFilterResults:
    @pytest.fixture
    def results(self, engine, mixed_records):
        return engine.run(mixed_records, boundary=BoundaryConfig(account_ids=["A", "B"])).results

    def test_by_state(self, results):
        matched = filter_results(results, state="matched")
        assert matched
        assert all(r.state is MatchState.MATCHED for r in matched)

    def test_by_decision(self, results):
        offsets = filter_results(results, decision=TransferDecision.INTERNAL_OFFSET)
        assert [r.out_leg.transaction_id for r in offsets] == ["e1"]

    def test_by_account_and_amount(self, results):
        assert filter_results(results, account_id="C", amount_minor=-10000)
        assert filter_results(results, account_id="C", amount_minor=5000) == []

    def test_by_same_file(self, results):
        assert filter_results(results, same_file=True) == []

    def test_by_query(self, results):
        found = filter_results(results, query="HOLIDAY")
        assert [r.out_leg.transaction_id for r in found] == ["e2"]


class TestIdentifierBeatsKeywordRival:
    """An exact identifier match wins outright against keyword-only rivals."""

    def test_account_key_match(self, engine, make_record):
        records = [
            make_record("d1", -10000, "2024-03-01", "A", "Transfer to 062000-12345678"),
            make_record("c1", 10000, "2024-03-01", "B", "Transfer from everyday"),
            make_record("c2", 10000, "2024-03-01", "C", "Transfer from everyday"),
        ]
        meta = [AccountMeta(bank_id="cba", account_id="B", bsb="062000", account_number="12345678")]
        report = engine.run(records, account_meta=meta)

        assert len(report.results) == 1
        result = report.results[0]
        assert result.in_leg.transaction_id == "c1"
        assert result.state is MatchState.MATCHED
        assert PenaltyTag.AMBIGUOUS_MULTI_CANDIDATE not in result.explanation.penalties

        # The rival stays visible for review
        assert len(report.collisions) == 1
        suggestion = report.collisions[0].suggested[0]
        assert suggestion.in_id == "c1"
        assert suggestion.strong_closure_count == 1

    def test_reference_id_match(self, engine, make_record):
        records = [
            make_record("d1", -10000, "2024-03-01", "A", "Transfer to savings #R77"),
            make_record("c1", 10000, "2024-03-01", "B", "Transfer from everyday #R77"),
            make_record("c2", 10000, "2024-03-01", "C", "Transfer from everyday"),
        ]
        report = engine.run(records)

        result = report.results[0]
        assert result.in_leg.transaction_id == "c1"
        assert result.state is MatchState.MATCHED
        assert result.confidence == pytest.approx(0.9888)


def test_near_tie_below_threshold_is_still_reported(make_record):
    records = [
        make_record("d", -10000, "2024-03-01", "A", "Transfer to savings"),
        make_record("c1", 10000, "2024-03-04", "B", "Deposit"),
        make_record("c2", 10000, "2024-03-04", "C", "Deposit"),
    ]
    config = MatchingConfig.from_raw(window_days=3)
    report = TransferMatchingEngine(config).run(records)

    # 0.72 each before the tie penalty, 0.57 after
    assert report.results == []
    assert len(report.collisions) == 1
    bucket = report.collisions[0]
    assert bucket.transaction_ids == ["c1", "c2", "d"]
    suggestion = bucket.suggested[0]
    assert suggestion.best_score == pytest.approx(0.57)
    assert suggestion.second_best_score == pytest.approx(0.57)


def test_run_account_meta_wins_for_labels(engine, transfer_pair):
    boundary = BoundaryConfig(
        account_ids=["A"],
        account_meta=[AccountMeta(bank_id="cba", account_id="B", account_name="Old Savings")],
    )
    meta = [AccountMeta(bank_id="cba", account_id="B", account_name="Holiday Saver")]
    result = engine.run(transfer_pair, boundary=boundary, account_meta=meta).results[0]

    assert "Holiday Saver" in result.why_sentence
    assert "Old Savings" not in result.why_sentence


def test_run_account_meta_merges_with_boundary_meta(engine, transfer_pair):
    boundary = BoundaryConfig(
        account_ids=["A"],
        account_meta=[AccountMeta(bank_id="cba", account_id="A", account_name="Everyday Account")],
    )
    meta = [AccountMeta(bank_id="cba", account_id="B", account_name="Holiday Saver")]
    result = engine.run(transfer_pair, boundary=boundary, account_meta=meta).results[0]

    assert "from Everyday Account to Holiday Saver" in result.why_sentence
