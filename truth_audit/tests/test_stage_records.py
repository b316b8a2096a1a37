"""
Test: Stage records, generator payload models and copy sanitizer
"""
from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from truth_audit.models.domain import StageRecord, StageStatus, stage_index, stage_key
from truth_audit.models.payloads import RawDiscrepancy, SignalItem, VerdictPayload
from truth_audit.services.copy_sanitizer import sanitize_copy, sanitize_copy_list

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class TestStageRecordInvariants:

    def test_done_requires_data(self):
        with pytest.raises(ValueError):
            StageRecord(status=StageStatus.DONE, data=None)

    def test_error_cannot_carry_data(self):
        with pytest.raises(ValueError):
            StageRecord(status=StageStatus.ERROR, data={'claims': []}, error='boom')

    def test_blocked_record_keeps_reason(self):
        record = StageRecord.blocked('stage3_insufficient_data', ttl_days=30, completed_at=NOW)
        assert record.status == StageStatus.BLOCKED
        assert record.data is None
        assert record.meta == {'reason': 'stage3_insufficient_data'}

    def test_status_string_is_coerced(self):
        record = StageRecord(status='running')
        assert record.status == StageStatus.RUNNING


class TestFreshness:

    def test_done_within_ttl_is_fresh(self):
        record = StageRecord.done({'claims': []}, ttl_days=30, completed_at=NOW - timedelta(days=29))
        assert record.is_fresh(NOW)

    def test_ttl_boundary_is_stale(self):
        record = StageRecord.done({'claims': []}, ttl_days=14, completed_at=NOW - timedelta(days=14))
        assert not record.is_fresh(NOW)

    def test_error_is_never_fresh(self):
        record = StageRecord.failed('timeout', ttl_days=30, completed_at=NOW)
        assert not record.is_fresh(NOW)

    def test_persisted_form_is_readable(self):
        record = StageRecord.done({'claims': []}, ttl_days=30, completed_at=NOW).with_version(3)
        restored = StageRecord.from_dict(record.to_dict())
        assert restored.version == 3
        assert restored.completed_at == NOW
        assert restored.is_fresh(NOW + timedelta(days=1))


class TestStageKeys:

    def test_stage_key(self):
        assert stage_key(1) == 'stage_1'
        assert stage_key(4) == 'stage_4'

    @pytest.mark.parametrize('index', [0, 5, -1])
    def test_stage_key_out_of_range(self, index):
        with pytest.raises(ValueError):
            stage_key(index)

    def test_stage_index(self):
        assert stage_index('stage_3') == 3


# =============================================================================
# PAYLOAD MODELS
# =============================================================================

class TestSignalItem:

    def test_bare_string(self):
        assert SignalItem.model_validate('Quiet fan').to_dict() == {'text': 'Quiet fan'}

    def test_numeric_string_sources(self):
        item = SignalItem.model_validate({'text': 'Compact', 'sources': '8'})
        assert item.sources == 8

    @pytest.mark.parametrize('sources', [-3, 'many', True])
    def test_bad_sources_are_dropped(self, sources):
        item = SignalItem.model_validate({'text': 'Compact', 'sources': sources})
        assert item.sources is None

    def test_blank_text_is_invalid(self):
        with pytest.raises(ValidationError):
            SignalItem.model_validate({'text': '   '})


class TestRawDiscrepancy:

    def test_aliases(self):
        raw = RawDiscrepancy.model_validate({'issue': 'Weight 23 lbs', 'description': 'Bulky', 'severity': 2})
        assert raw.claim == 'Weight 23 lbs'
        assert raw.reality == 'Bulky'
        assert raw.severity == '2'

    def test_claim_wins_over_issue(self):
        raw = RawDiscrepancy.model_validate({'claim': '1024Wh', 'issue': 'ignored'})
        assert raw.claim == '1024Wh'


class TestVerdictPayload:

    def test_missing_required_arrays(self):
        with pytest.raises(ValidationError):
            VerdictPayload.model_validate({'score_interpretation': 'Fine', 'strengths': []})

    def test_empty_interpretation(self):
        with pytest.raises(ValidationError):
            VerdictPayload.model_validate({'score_interpretation': ' ', 'strengths': [], 'limitations': []})

    def test_lenient_optional_fields(self):
        verdict = VerdictPayload.model_validate({
            'score_interpretation': 'Fine',
            'strengths': [{'text': 'Compact'}, '', 'Quiet'],
            'limitations': [],
            'good_fit': 'campers',
            'score_adjustment': 'none',
        })
        assert verdict.strengths == ['Compact', 'Quiet']
        assert verdict.good_fit == []
        assert verdict.score_adjustment is None


class TestCopySanitizer:

    def test_jargon_is_replaced(self):
        assert sanitize_copy('A robust, enterprise-grade unit') == 'A reliable, professional-grade unit'

    def test_capacity_phrase_keeps_qualifier(self):
        assert sanitize_copy('High raw battery capacity') == 'large advertised battery capacity'

    def test_plain_copy_untouched(self):
        assert sanitize_copy_list(['Quiet under load', 'Heavy']) == ['Quiet under load', 'Heavy']
