"""
Test: Base scores, metric bars and Truth Index
==============================================
"""

import pytest

from truth_audit.models.domain import BaseScores, Bucket, NormalizedEntry, Severity
from truth_audit.models.payloads import ScoreAdjustment
from truth_audit.services.scoring import build_metric_bars, compute_base_scores, rating_for
from truth_audit.services.truth_index import (
    compute_truth_index,
    validate_adjustment,
    weighted_base,
)


def make_entry(claim='1024Wh', reality='942Wh measured', severity=Severity.MODERATE, tags=None):
    key = f"{claim.lower()}::{reality.lower()}"
    return NormalizedEntry(
        key=key,
        claim=claim,
        reality=reality,
        impact='',
        severity=severity,
        tags=tags or [Bucket.CLAIMS_ACCURACY],
    )


@pytest.fixture
def capacity_entry():
    return make_entry()


# =============================================================================
# BASE SCORES
# =============================================================================

class TestBaseScores:

    def test_no_entries(self):
        assert compute_base_scores([]) == BaseScores(100, 100, 100)

    def test_penalty_only_hits_tagged_buckets(self, capacity_entry):
        scores = compute_base_scores([capacity_entry])
        assert scores.claims_accuracy == 90
        assert scores.real_world_fit == 100
        assert scores.operational_noise == 100

    def test_multi_tag_entry_penalizes_each_bucket(self):
        entry = make_entry(severity=Severity.SEVERE,
                           tags=[Bucket.OPERATIONAL_NOISE, Bucket.CLAIMS_ACCURACY])
        scores = compute_base_scores([entry])
        assert scores.operational_noise == 85
        assert scores.claims_accuracy == 85
        assert scores.real_world_fit == 100

    def test_clamped_at_zero(self):
        entries = [make_entry(claim=f"claim {i}", severity=Severity.SEVERE) for i in range(10)]
        assert compute_base_scores(entries).claims_accuracy == 0

    def test_more_entries_never_raise_scores(self):
        entries = [make_entry(claim=f"claim {i}", severity=Severity.MINOR) for i in range(6)]
        previous = 100
        for n in range(len(entries) + 1):
            score = compute_base_scores(entries[:n]).claims_accuracy
            assert 0 <= score <= previous
            previous = score


class TestMetricBars:

    @pytest.mark.parametrize('percentage,rating', [
        (100, 'High'), (85, 'High'), (84, 'Moderate'), (60, 'Moderate'), (59, 'Low'), (0, 'Low'),
    ])
    def test_rating_thresholds(self, percentage, rating):
        assert rating_for(percentage) == rating

    def test_bar_order_and_values(self):
        bars = build_metric_bars(BaseScores(90, 55, 100))
        assert [(b.label, b.rating, b.percentage) for b in bars] == [
            ('Claims Accuracy', 'High', 90),
            ('Real-World Fit', 'Low', 55),
            ('Operational Noise', 'High', 100),
        ]


# =============================================================================
# TRUTH INDEX
# =============================================================================

class TestTruthIndexBase:

    def test_weighted_base_single_moderate_capacity_flag(self):
        assert weighted_base(BaseScores(90, 100, 100)) == 95

    def test_weighted_base_rounds_above_half_up(self):
        # 0.45*85 + 0.35*90 + 0.20*70 = 38.25 + 31.5 + 14 = 83.75
        assert weighted_base(BaseScores(85, 90, 70)) == 84

    def test_weighted_base_perfect(self):
        assert weighted_base(BaseScores(100, 100, 100)) == 100

    def test_breakdown_without_adjustment(self, capacity_entry):
        breakdown = compute_truth_index(BaseScores(90, 100, 100), [capacity_entry])
        assert breakdown.base == 95
        assert breakdown.final == 95
        assert breakdown.llm_adjustment is None
        assert breakdown.weights == {
            'claims_accuracy': 0.45, 'real_world_fit': 0.35, 'operational_noise': 0.20,
        }

    def test_penalties_are_informational(self):
        entries = [
            make_entry(claim='a claim', severity=Severity.SEVERE),
            make_entry(claim='b claim', severity=Severity.MODERATE),
            make_entry(claim='c claim', severity=Severity.MINOR),
        ]
        breakdown = compute_truth_index(BaseScores(70, 100, 100), entries)
        assert breakdown.penalties.to_dict() == {'severe': 1, 'moderate': 1, 'minor': 1, 'total': -6}
        assert breakdown.final == breakdown.base


class TestAdjustmentGates:

    def test_delta_out_of_bounds_rejected(self, capacity_entry):
        breakdown = compute_truth_index(
            BaseScores(90, 100, 100), [capacity_entry],
            {'delta': 4, 'reason': 'The 1024Wh claim is badly overstated in testing'},
        )
        assert breakdown.llm_adjustment is None
        assert breakdown.final == 95
        assert breakdown.rejected_adjustment is not None

    def test_short_reason_rejected(self, capacity_entry):
        assert validate_adjustment({'delta': 2, 'reason': 'ok!'}, [capacity_entry]) is None

    def test_reason_quoting_claim_accepted(self, capacity_entry):
        breakdown = compute_truth_index(
            BaseScores(90, 100, 100), [capacity_entry],
            ScoreAdjustment(delta=2, reason='Shortfall on the 1024Wh claim is within tolerance'),
        )
        assert breakdown.llm_adjustment.delta == 2
        assert breakdown.final == 97

    def test_reason_quoting_key_fragment_accepted(self, capacity_entry):
        adjustment = validate_adjustment(
            {'delta': -1, 'reason': 'Testers saw 942wh measured across three units'},
            [capacity_entry],
        )
        assert adjustment.delta == -1

    def test_ungrounded_reason_rejected(self, capacity_entry):
        assert validate_adjustment(
            {'delta': 2, 'reason': 'Overall the product feels premium and well built'},
            [capacity_entry],
        ) is None

    @pytest.mark.parametrize('delta', [0, True, 2.5, '2', None, -4])
    def test_invalid_deltas(self, capacity_entry, delta):
        assert validate_adjustment(
            {'delta': delta, 'reason': 'Shortfall on the 1024Wh claim is within tolerance'},
            [capacity_entry],
        ) is None

    def test_integral_float_delta_accepted(self, capacity_entry):
        adjustment = validate_adjustment(
            {'delta': -3.0, 'reason': 'Shortfall on the 1024Wh claim is significant'},
            [capacity_entry],
        )
        assert adjustment.delta == -3

    def test_final_is_clamped(self):
        entry = make_entry(claim='Quiet 30dB', reality='Measured 32dB')
        breakdown = compute_truth_index(
            BaseScores(100, 100, 100), [entry],
            {'delta': 3, 'reason': 'Quiet 30dB claim is essentially accurate'},
        )
        assert breakdown.base == 100
        assert breakdown.final == 100
