"""
Discrepancy normalizer (stage 3a)

Turns the generator's raw red flags into deduplicated, bucket-tagged
entries. Pure and idempotent: normalizing the serialized output again
yields the same entries.

Pipeline per candidate:
1. Field coercion   - claim/issue, reality/description, impact sentence, severity synonyms
2. Suppression      - known false positives (policy rules) are dropped
3. Deduplication    - first occurrence of a key wins
4. Bucket tagging   - keyword substrings over claim + reality + impact
"""
import re
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from truth_audit.models.domain import Bucket, NormalizedEntry, NormalizedStage3, Severity
from truth_audit.models.payloads import RawDiscrepancy
from truth_audit.services.stage_validators import find_candidate_array

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r'[^a-z0-9\s]')
_WHITESPACE_RE = re.compile(r'\s+')


@dataclass(frozen=True)
class SuppressionRule:
    """Drops a candidate when every term group has at least one term in its text."""
    name: str
    term_groups: Tuple[Tuple[str, ...], ...]

    def matches(self, text: str) -> bool:
        return all(any(term in text for term in group) for group in self.term_groups)


@dataclass
class NormalizationPolicy:
    """
    Replaceable keyword and suppression table.

    bucket_keywords order is also the tag emission order.
    """
    bucket_keywords: Dict[Bucket, Tuple[str, ...]]
    suppression_rules: List[SuppressionRule] = field(default_factory=list)
    severity_synonyms: Dict[str, Severity] = field(default_factory=dict)
    default_bucket: Bucket = Bucket.CLAIMS_ACCURACY
    default_severity: Severity = Severity.MINOR


DEFAULT_POLICY = NormalizationPolicy(
    bucket_keywords={
        Bucket.OPERATIONAL_NOISE: (
            'connectivity', 'app', 'firmware', 'bluetooth', 'wifi', 'software', 'pairing',
            'disconnect', 'update', 'sync', 'noise', 'fan', 'loud', 'decibel', 'db',
        ),
        Bucket.REAL_WORLD_FIT: (
            'weight', 'portab', 'setup', 'compatib', 'voltage', 'dimension', 'size', 'bulk',
            'transport', 'placement', 'proprietary', 'cable', 'expansion', 'ecosystem',
        ),
        Bucket.CLAIMS_ACCURACY: (
            'spec', 'mismatch', 'runtime', 'watt', 'wh', 'charging', 'capacity', 'output',
            'input', 'efficiency', 'cycle', 'rated', 'actual', 'advertised', 'claimed',
        ),
    },
    suppression_rules=[
        # Expansion batteries sold separately are not a capacity shortfall
        SuppressionRule(
            name='addon_capacity',
            term_groups=(
                ('capacity', 'wh'),
                ('add-on', 'expansion', 'extra battery', 'shelf'),
            ),
        ),
    ],
    severity_synonyms={
        'severe': Severity.SEVERE,
        'high': Severity.SEVERE,
        'critical': Severity.SEVERE,
        'moderate': Severity.MODERATE,
        'medium': Severity.MODERATE,
        'med': Severity.MODERATE,
        'minor': Severity.MINOR,
        'low': Severity.MINOR,
    },
)


def normalize_text(text: str) -> str:
    """Lowercase, strip punctuation, collapse whitespace."""
    text = _NON_ALNUM_RE.sub('', (text or '').lower())
    return _WHITESPACE_RE.sub(' ', text).strip()


def as_sentence(text: str) -> str:
    """Trim and end with exactly one period (empty stays empty)."""
    text = (text or '').strip().rstrip('.').rstrip()
    return f"{text}." if text else ''


def derive_key(claim: str, reality: str, impact: str) -> str:
    norm_claim = normalize_text(claim)
    norm_reality = normalize_text(reality)
    norm_impact = normalize_text(impact)
    if norm_reality:
        return f"{norm_claim}::{norm_reality}"
    if norm_impact:
        return f"{norm_claim}::{norm_impact}"
    return norm_claim or 'unknown'


def map_severity(raw: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> Severity:
    return policy.severity_synonyms.get((raw or '').strip().lower(), policy.default_severity)


def tag_buckets(text: str, policy: NormalizationPolicy = DEFAULT_POLICY) -> List[Bucket]:
    lowered = text.lower()
    tags = [
        bucket for bucket, keywords in policy.bucket_keywords.items()
        if any(keyword in lowered for keyword in keywords)
    ]
    return tags or [policy.default_bucket]


def coerce_candidate(raw: Any) -> Optional[RawDiscrepancy]:
    try:
        candidate = RawDiscrepancy.model_validate(raw)
    except ValidationError:
        return None
    if not candidate.claim and not candidate.reality:
        return None
    return candidate


def normalize_stage3(
    raw: Any,
    policy: NormalizationPolicy = DEFAULT_POLICY
) -> NormalizedStage3:
    """
    Normalize raw stage 3 output.

    Args:
        raw: Candidate list, or a payload holding one under red_flags /
             fact_checks / checks / discrepancies
        policy: Keyword and suppression table

    Returns:
        NormalizedStage3 with total_count = number of candidates seen
    """
    _, candidates = find_candidate_array(raw)
    candidates = candidates or []

    entries: List[NormalizedEntry] = []
    seen = set()
    suppressed = 0

    for raw_candidate in candidates:
        candidate = coerce_candidate(raw_candidate)
        if candidate is None:
            continue

        impact = as_sentence(candidate.impact)
        combined = f"{candidate.claim} {candidate.reality} {impact}".lower()

        if any(rule.matches(combined) for rule in policy.suppression_rules):
            suppressed += 1
            continue

        key = derive_key(candidate.claim, candidate.reality, impact)
        if key in seen:
            continue
        seen.add(key)

        entries.append(NormalizedEntry(
            key=key,
            claim=candidate.claim,
            reality=candidate.reality,
            impact=impact,
            severity=map_severity(candidate.severity, policy),
            tags=tag_buckets(combined, policy),
        ))

    if suppressed:
        logger.info(f"🧹 Suppressed {suppressed} false-positive discrepancies")

    return NormalizedStage3(
        entries=entries,
        total_count=len(candidates),
        unique_count=len(entries),
    )
