"""
Stage payload validators

A stage cannot be marked done with unusable data. Stage 3 validation gates
scoring; stage 4 validation guards what is persisted as the final verdict.
"""
from dataclasses import dataclass, field
from typing import Any, List, Optional

CANDIDATE_ARRAY_KEYS = ('red_flags', 'fact_checks', 'checks', 'discrepancies')

CLAIM_FIELDS = ('claim', 'label', 'issue')
VERIFICATION_FIELDS = ('reality', 'description', 'verdict', 'severity', 'status')


@dataclass
class ValidationResult:
    valid: bool
    error: Optional[str] = None
    item_count: int = 0
    array_key: Optional[str] = None
    items: List[Any] = field(default_factory=list)


def find_candidate_array(data: Any):
    """
    Locate the discrepancy array in a stage 3 payload.

    Returns (key, items) or (None, None). A bare top-level list counts as red_flags.
    """
    if isinstance(data, list):
        return 'red_flags', data
    if not isinstance(data, dict):
        return None, None
    for key in CANDIDATE_ARRAY_KEYS:
        if isinstance(data.get(key), list):
            return key, data[key]
    return None, None


def _has_any(item: dict, fields) -> bool:
    return any(item.get(name) for name in fields)


def validate_stage3(data: Any) -> ValidationResult:
    """
    An empty array is valid (nothing found). Every item needs a claim-like
    field and at least one verification field.
    """
    if data is None:
        return ValidationResult(valid=False, error="missing_data")

    key, items = find_candidate_array(data)
    if items is None:
        return ValidationResult(valid=False, error="no_valid_array_found")

    for item in items:
        if not isinstance(item, dict) or not _has_any(item, CLAIM_FIELDS):
            return ValidationResult(valid=False, error="missing_claim_field",
                                    item_count=len(items), array_key=key)
        if not _has_any(item, VERIFICATION_FIELDS):
            return ValidationResult(valid=False, error="missing_verification_field",
                                    item_count=len(items), array_key=key)

    return ValidationResult(valid=True, item_count=len(items), array_key=key, items=list(items))


def validate_stage4(data: Any) -> ValidationResult:
    if not isinstance(data, dict):
        return ValidationResult(valid=False, error="missing_data")

    truth_index = data.get('truth_index')
    if isinstance(truth_index, bool) or not isinstance(truth_index, (int, float)):
        return ValidationResult(valid=False, error="missing_truth_index")
    if not data.get('score_interpretation'):
        return ValidationResult(valid=False, error="missing_score_interpretation")
    if not isinstance(data.get('strengths'), list) or not isinstance(data.get('limitations'), list):
        return ValidationResult(valid=False, error="missing_arrays")

    return ValidationResult(valid=True)
