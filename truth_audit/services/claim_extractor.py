"""
Claim extractor (stage 1) - deterministic attribute bag → claim profile

No external calls and no failure path: the worst case is the identity
fallback (Brand / Model / Category plus weight and price when known).
"""
import re
import logging
from typing import Any, Dict, List

from truth_audit.models.domain import Product

logger = logging.getLogger(__name__)

BOOKKEEPING_KEYS = {'spec_sources', 'evidence', 'content_hash'}

EMPTY_VALUES = {'not specified', 'null', 'undefined', '', 'false'}

LABEL_FIELDS = ('label', 'name', 'key', 'title')
VALUE_FIELDS = ('value', 'spec_value', 'val', 'display_value')

_WORD_START_RE = re.compile(r'\b\w')


def stringify(value: Any) -> str:
    """Render a spec value the way it shows up in a JSON consumer."""
    if value is None:
        return 'null'
    if isinstance(value, bool):
        return 'true' if value else 'false'
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, (list, tuple)):
        return ', '.join(stringify(v) for v in value)
    return str(value)


def humanize_key(key: str) -> str:
    """battery_capacity_wh → Battery Capacity Wh"""
    return _WORD_START_RE.sub(lambda m: m.group().upper(), key.replace('_', ' '))


def _first_present(item: Dict[str, Any], fields) -> Any:
    for name in fields:
        value = item.get(name)
        if value not in (None, ''):
            return value
    return None


def unwrap_specs(specs: Any) -> Any:
    """
    Unwrap storage envelopes around the attribute bag.

    {kv: {...}} → the inner map
    {items: [{key, value}, ...]} → a plain map
    """
    if not isinstance(specs, dict):
        return specs
    if isinstance(specs.get('kv'), dict):
        return specs['kv']
    if isinstance(specs.get('items'), list):
        return {
            str(item['key']): item.get('value')
            for item in specs['items']
            if isinstance(item, dict) and item.get('key')
        }
    return specs


def flatten_specs(specs: Dict[str, Any], prefix: str = '') -> List[Dict[str, str]]:
    """Flatten a nested key/value map into labelled claims, in insertion order."""
    claims = []
    for key, value in specs.items():
        if key in BOOKKEEPING_KEYS:
            continue
        path = f"{prefix} {key}" if prefix else str(key)

        if isinstance(value, dict):
            claims.extend(flatten_specs(value, path))
        else:
            claims.append({'label': humanize_key(path), 'value': stringify(value)})
    return claims


def map_spec_items(items: List[Any]) -> List[Dict[str, str]]:
    claims = []
    for item in items:
        if not isinstance(item, dict):
            continue
        label = _first_present(item, LABEL_FIELDS)
        value = _first_present(item, VALUE_FIELDS)
        claims.append({
            'label': stringify(label) if label is not None else 'Unknown',
            'value': stringify(value) if value is not None else 'Not specified',
        })
    return claims


def identity_fallback(product: Product) -> List[Dict[str, str]]:
    claims = [
        {'label': 'Brand', 'value': product.brand or 'Unknown'},
        {'label': 'Model', 'value': product.model_name or 'Unknown'},
        {'label': 'Category', 'value': product.category or 'Unknown'},
    ]
    if product.weight_lbs is not None:
        claims.append({'label': 'Weight', 'value': f"{stringify(product.weight_lbs)} lbs"})
    if product.msrp_usd is not None:
        claims.append({'label': 'MSRP', 'value': f"${stringify(product.msrp_usd)}"})
    return claims


def extract_claim_profile(product: Product) -> List[Dict[str, str]]:
    """
    Map a product's attribute bag to an ordered {label, value} claim list.

    Entries with placeholder values are filtered out; if nothing survives
    the identity fallback is returned instead.
    """
    specs = unwrap_specs(product.technical_specs)

    if isinstance(specs, list):
        claims = map_spec_items(specs)
    elif isinstance(specs, dict):
        claims = flatten_specs(specs)
    else:
        claims = []

    claims = [c for c in claims if c['value'].strip().lower() not in EMPTY_VALUES]

    if not claims:
        logger.warning(f"⚠️ No usable specs for {product.id}, using identity fallback")
        return identity_fallback(product)

    logger.info(f"📋 Mapped {len(claims)} claims for {product.display_name}")
    return claims
