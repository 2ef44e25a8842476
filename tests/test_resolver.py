"""Tests for greedy assignment, states and collision buckets."""

from datetime import date

import pytest

from transfer_engine.matching.config import MatchingConfig
from transfer_engine.matching.models import (
    CandidatePair,
    IgnoredReason,
    MatchState,
    ScoredCandidate,
    ScoreExplanation,
    make_match_id,
)
from transfer_engine.matching.resolver import AssignmentResolver


def _scored(out_record, in_record, score):
    gap = abs((in_record.date - out_record.date).days)
    pair = CandidatePair(
        out_record=out_record,
        in_record=in_record,
        amount_minor=abs(out_record.amount_minor),
        date_diff_days=gap,
    )
    return ScoredCandidate(
        pair=pair,
        explanation=ScoreExplanation(
            amount_minor=pair.amount_minor, date_diff_days=gap, score=score
        ),
    )


@pytest.fixture
def legs(make_record):
    return {
        "d": make_record("d", -10000, "2024-03-01", "A"),
        "x": make_record("x", 10000, "2024-03-01", "B"),
        "y": make_record("y", 10000, "2024-03-02", "C"),
        "z": make_record("z", 10000, "2024-03-01", "D"),
    }


class TestDetermineState:
    """Test threshold mapping."""

    @pytest.mark.parametrize(
        "score, expected",
        [
            (0.85, MatchState.MATCHED),
            (0.99, MatchState.MATCHED),
            (0.8499, MatchState.UNCERTAIN),
            (0.60, MatchState.UNCERTAIN),
            (0.5999, MatchState.IGNORED),
            (0.0, MatchState.IGNORED),
        ],
    )
    def test_default_thresholds(self, score, expected):
        assert AssignmentResolver().determine_state(score) is expected


def test_highest_score_wins(legs):
    outcome = AssignmentResolver().resolve(
        [_scored(legs["d"], legs["x"], 0.70), _scored(legs["d"], legs["y"], 0.95)]
    )

    assert len(outcome.results) == 1
    result = outcome.results[0]
    assert result.in_leg.transaction_id == "y"
    assert result.state is MatchState.MATCHED
    assert result.out_leg.role == "out"
    assert result.in_leg.role == "in"
    assert [(i.in_id, i.reason) for i in outcome.ignored] == [
        ("x", IgnoredReason.LEG_ALREADY_ASSIGNED)
    ]


def test_tie_broken_by_smaller_date_gap(legs):
    outcome = AssignmentResolver().resolve(
        [_scored(legs["d"], legs["y"], 0.90), _scored(legs["d"], legs["x"], 0.90)]
    )
    assert outcome.results[0].in_leg.transaction_id == "x"


def test_tie_broken_by_smaller_match_id(legs):
    candidates = [_scored(legs["d"], legs["z"], 0.90), _scored(legs["d"], legs["x"], 0.90)]
    expected = min(candidates, key=lambda c: c.match_id)

    for ordering in (candidates, list(reversed(candidates))):
        outcome = AssignmentResolver().resolve(ordering)
        assert outcome.results[0].match_id == expected.match_id


def test_low_confidence_pairs_are_ignored(legs):
    outcome = AssignmentResolver().resolve([_scored(legs["d"], legs["x"], 0.40)])

    assert outcome.results == []
    assert outcome.ignored[0].reason is IgnoredReason.LOW_CONFIDENCE
    assert outcome.collisions == []


def test_no_leg_used_twice(make_record):
    outs = [make_record(f"o{i}", -500, "2024-03-01", "A") for i in range(3)]
    ins = [make_record(f"i{i}", 500, "2024-03-01", "B") for i in range(3)]
    scored = [
        _scored(o, i, 0.6 + 0.01 * (n % 7))
        for n, (o, i) in enumerate((o, i) for o in outs for i in ins)
    ]
    outcome = AssignmentResolver().resolve(scored)

    used = [leg.transaction_id for r in outcome.results for leg in r.legs]
    assert len(used) == len(set(used))
    assert len(outcome.results) == 3


class TestCollisions:
    """Test collision bucket reporting."""

    def test_one_debit_two_viable_credits(self, legs):
        outcome = AssignmentResolver().resolve(
            [_scored(legs["d"], legs["x"], 0.90), _scored(legs["d"], legs["z"], 0.70)]
        )

        assert len(outcome.collisions) == 1
        bucket = outcome.collisions[0]
        assert bucket.amount_minor == 10000
        assert bucket.date == date(2024, 3, 1)
        assert bucket.transaction_ids == ["d", "x", "z"]
        assert len(bucket.suggested) == 1

        suggestion = bucket.suggested[0]
        assert suggestion.contended_role == "out"
        assert suggestion.contended_id == "d"
        assert (suggestion.out_id, suggestion.in_id) == ("d", "x")
        assert suggestion.best_score == 0.90
        assert suggestion.second_best_score == 0.70
        assert suggestion.viable_candidates == 2

    def test_non_viable_alternatives_do_not_collide(self, legs):
        outcome = AssignmentResolver().resolve(
            [_scored(legs["d"], legs["x"], 0.90), _scored(legs["d"], legs["z"], 0.30)]
        )
        assert outcome.collisions == []

    def test_bucket_key_uses_earlier_date_of_best_pair(self, legs):
        outcome = AssignmentResolver().resolve(
            [_scored(legs["d"], legs["y"], 0.90), _scored(legs["d"], legs["x"], 0.80)]
        )
        bucket = outcome.collisions[0]
        assert bucket.date == date(2024, 3, 1)
        assert bucket.dates == [date(2024, 3, 1), date(2024, 3, 2)]

    def test_both_roles_contended(self, make_record):
        d1 = make_record("d1", -100, "2024-03-01", "A")
        d2 = make_record("d2", -100, "2024-03-01", "A")
        c1 = make_record("c1", 100, "2024-03-01", "B")
        c2 = make_record("c2", 100, "2024-03-01", "B")
        scored = [
            _scored(d1, c1, 0.90),
            _scored(d1, c2, 0.80),
            _scored(d2, c1, 0.85),
            _scored(d2, c2, 0.70),
        ]
        outcome = AssignmentResolver().resolve(scored)

        # Every leg has two viable candidates; all share one (amount, date) key
        assert len(outcome.collisions) == 1
        suggested = outcome.collisions[0].suggested
        assert {(s.contended_role, s.contended_id) for s in suggested} == {
            ("out", "d1"),
            ("out", "d2"),
            ("in", "c1"),
            ("in", "c2"),
        }
        assert [s.best_score for s in suggested] == sorted(
            (s.best_score for s in suggested), reverse=True
        )

    def test_max_suggestions(self, make_record):
        config = MatchingConfig.model_validate({"tie_breaking": {"max_suggestions": 1}})
        d1 = make_record("d1", -100, "2024-03-01", "A")
        d2 = make_record("d2", -100, "2024-03-01", "A")
        c1 = make_record("c1", 100, "2024-03-01", "B")
        c2 = make_record("c2", 100, "2024-03-01", "B")
        scored = [_scored(d, c, 0.9) for d in (d1, d2) for c in (c1, c2)]

        outcome = AssignmentResolver(config).resolve(scored)
        assert len(outcome.collisions[0].suggested) == 1


def test_result_carries_match_id_and_explanation(legs):
    outcome = AssignmentResolver().resolve([_scored(legs["d"], legs["x"], 0.70)])
    result = outcome.results[0]

    assert result.match_id == make_match_id("x", "d")
    assert result.state is MatchState.UNCERTAIN
    assert result.confidence == 0.70
    assert result.amount_minor == 10000
    assert result.decision is None


def test_tie_pushed_below_threshold_still_collides(legs):
    """Viability for collisions ignores the near-tie penalty."""
    first = _scored(legs["d"], legs["x"], 0.57)
    second = _scored(legs["d"], legs["z"], 0.57)
    for candidate in (first, second):
        candidate.explanation.score_before_ambiguity = 0.72

    outcome = AssignmentResolver().resolve([first, second])

    assert outcome.results == []
    assert len(outcome.collisions) == 1
    suggestion = outcome.collisions[0].suggested[0]
    assert suggestion.contended_id == "d"
    assert suggestion.best_score == 0.57
    assert suggestion.second_best_score == 0.57
