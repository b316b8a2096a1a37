"""
Test: Claim extraction (stage 1)
================================
"""

import pytest

from truth_audit.models.domain import Product
from truth_audit.services.claim_extractor import (
    extract_claim_profile,
    humanize_key,
    stringify,
    unwrap_specs,
)


def make_product(specs, **kwargs):
    return Product(id='pr_test0001', brand='Acme', model_name='PB1', category='Power', technical_specs=specs, **kwargs)


class TestMapForm:

    def test_flattens_nested_groups(self):
        claims = extract_claim_profile(make_product({
            'battery': {'capacity_wh': 1024, 'chemistry': 'LiFePO4'},
            'ac_output': '1800W',
        }))
        assert claims == [
            {'label': 'Battery Capacity Wh', 'value': '1024'},
            {'label': 'Battery Chemistry', 'value': 'LiFePO4'},
            {'label': 'Ac Output', 'value': '1800W'},
        ]

    def test_skips_bookkeeping_keys(self):
        claims = extract_claim_profile(make_product({
            'capacity': '1024Wh',
            'spec_sources': {'capacity': 'https://example.com'},
            'evidence': ['a', 'b'],
            'content_hash': 'abc123',
        }))
        assert claims == [{'label': 'Capacity', 'value': '1024Wh'}]

    def test_filters_placeholder_values(self):
        claims = extract_claim_profile(make_product({
            'capacity': '1024Wh',
            'ups_mode': False,
            'solar_input': None,
            'app': 'Not Specified',
            'wireless': ' undefined ',
            'notes': '',
        }))
        assert claims == [{'label': 'Capacity', 'value': '1024Wh'}]

    def test_true_is_kept_as_text(self):
        claims = extract_claim_profile(make_product({'pass_through_charging': True}))
        assert claims == [{'label': 'Pass Through Charging', 'value': 'true'}]


class TestArrayForm:

    def test_label_and_value_aliases(self):
        claims = extract_claim_profile(make_product([
            {'label': 'Capacity', 'value': '1024Wh'},
            {'name': 'AC Output', 'spec_value': '1800W'},
            {'key': 'Weight', 'val': 23.8},
        ]))
        assert claims == [
            {'label': 'Capacity', 'value': '1024Wh'},
            {'label': 'AC Output', 'value': '1800W'},
            {'label': 'Weight', 'value': '23.8'},
        ]

    def test_missing_value_is_filtered(self):
        claims = extract_claim_profile(make_product([
            {'label': 'Capacity', 'value': '1024Wh'},
            {'label': 'Cycle Life'},
        ]))
        assert claims == [{'label': 'Capacity', 'value': '1024Wh'}]


class TestEnvelopes:

    def test_kv_envelope(self):
        assert unwrap_specs({'kv': {'capacity': '1024Wh'}}) == {'capacity': '1024Wh'}

    def test_items_envelope(self):
        specs = {'items': [{'key': 'capacity', 'value': '1024Wh'}, {'value': 'orphan'}]}
        assert unwrap_specs(specs) == {'capacity': '1024Wh'}


class TestIdentityFallback:

    def test_nothing_survives_filtering(self):
        claims = extract_claim_profile(make_product({'app': 'null'}, weight_lbs=23.0, msrp_usd=799.0))
        assert claims == [
            {'label': 'Brand', 'value': 'Acme'},
            {'label': 'Model', 'value': 'PB1'},
            {'label': 'Category', 'value': 'Power'},
            {'label': 'Weight', 'value': '23 lbs'},
            {'label': 'MSRP', 'value': '$799'},
        ]

    def test_missing_identity_fields(self):
        product = Product(id='pr_test0002', technical_specs=None)
        claims = extract_claim_profile(product)
        assert [c['value'] for c in claims] == ['Unknown', 'Unknown', 'Unknown']


class TestHelpers:

    @pytest.mark.parametrize('value,expected', [
        (1024.0, '1024'),
        (23.8, '23.8'),
        (None, 'null'),
        (['USB-C', 'AC'], 'USB-C, AC'),
    ])
    def test_stringify(self, value, expected):
        assert stringify(value) == expected

    def test_humanize_key(self):
        assert humanize_key('max_solar_input') == 'Max Solar Input'
