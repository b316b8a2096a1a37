"""
Test: Community signal aggregation (stage 2)
============================================

Stage 2 never fails the audit. Every bad path degrades to empty arrays.
"""
import pytest

from truth_audit.services.signal_aggregator import SignalAggregator, build_context
from truth_audit.tests.fakes import TIMEOUT, ScriptedGenerator

CLAIMS = [{'label': 'Capacity', 'value': '1024Wh'}]


class TestAggregate:

    @pytest.mark.asyncio
    async def test_items_are_coerced(self, product):
        generator = ScriptedGenerator(stage_2={
            'most_praised': [{'text': 'Quiet', 'sources': '8'}, 'Compact', {'text': ''}],
            'most_reported_issues': [{'text': 'Heavy', 'sources': -2}],
        })
        signal = await SignalAggregator(generator).aggregate(product, CLAIMS)

        assert not signal.degraded
        assert signal.to_dict() == {
            'most_praised': [{'text': 'Quiet', 'sources': 8}, {'text': 'Compact'}],
            'most_reported_issues': [{'text': 'Heavy'}],
            'source_summary': {'praised_count': 2, 'issue_count': 1, 'degraded': False},
        }
        assert signal.meta['item_count'] == 3

    @pytest.mark.asyncio
    async def test_prompt_carries_claims(self, product):
        generator = ScriptedGenerator(stage_2={'most_praised': [], 'most_reported_issues': []})
        await SignalAggregator(generator).aggregate(product, CLAIMS)
        assert '- Capacity: 1024Wh' in generator.prompts['stage_2'][0]


class TestDegradation:

    @pytest.mark.asyncio
    async def test_timeout(self, product):
        signal = await SignalAggregator(ScriptedGenerator(stage_2=TIMEOUT)).aggregate(product, CLAIMS)
        assert signal.degraded
        assert signal.reason == 'timeout'
        assert signal.meta['timed_out'] is True
        assert signal.to_dict()['most_praised'] == []

    @pytest.mark.asyncio
    async def test_unparseable_text(self, product):
        generator = ScriptedGenerator(stage_2='No community data found.')
        signal = await SignalAggregator(generator).aggregate(product, CLAIMS)
        assert signal.degraded
        assert signal.reason == 'parse_error'

    @pytest.mark.asyncio
    async def test_missing_arrays(self, product):
        generator = ScriptedGenerator(stage_2={'most_praised': []})
        signal = await SignalAggregator(generator).aggregate(product, CLAIMS)
        assert signal.reason == 'missing_arrays'
        assert signal.to_dict()['source_summary']['degraded'] is True

    @pytest.mark.asyncio
    async def test_generator_exception_is_contained(self, product):
        generator = ScriptedGenerator(stage_2=RuntimeError('connection reset'))
        signal = await SignalAggregator(generator).aggregate(product, CLAIMS)
        assert signal.degraded
        assert signal.reason.startswith('generator_error')


class TestContext:

    def test_context_is_bounded(self, product):
        claims = [{'label': f'Spec {i}', 'value': 'x' * 300} for i in range(15)]
        lines = build_context(product, claims).split('\n')
        assert len(lines) == 10
        assert all(len(line) <= 160 for line in lines)
