"""
Pydantic models for generator payloads

Generator output is free text that drifts in shape. These models are the
boundary: every stage payload is coerced through them before it reaches
domain logic, so downstream code never probes optional fields.
"""
from pydantic import BaseModel, field_validator, model_validator
from typing import Optional, List, Any


def _as_text(value: Any) -> str:
    """Coerce a scalar into trimmed text; containers and None become ''."""
    if value is None or isinstance(value, (dict, list)):
        return ''
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value).strip()


def _text_list(value: Any) -> List[str]:
    """Accept a list of strings or {text: ...} objects, drop blanks."""
    if not isinstance(value, list):
        return []
    items = []
    for item in value:
        if isinstance(item, dict):
            item = item.get('text') or item.get('value') or item.get('label')
        text = _as_text(item)
        if text:
            items.append(text)
    return items


class SignalItem(BaseModel):
    """Single praised / reported item from community signal"""
    text: str
    sources: Optional[int] = None

    model_config = {"extra": "ignore"}

    @model_validator(mode='before')
    @classmethod
    def accept_bare_string(cls, v):
        if isinstance(v, str):
            return {'text': v}
        return v

    @field_validator('text', mode='before')
    @classmethod
    def coerce_text(cls, v):
        text = _as_text(v)
        if not text:
            raise ValueError("signal item has no text")
        return text

    @field_validator('sources', mode='before')
    @classmethod
    def coerce_sources(cls, v):
        """Non-negative int or dropped"""
        if v is None or isinstance(v, bool):
            return None
        try:
            count = int(float(v))
        except (TypeError, ValueError):
            return None
        return count if count >= 0 else None

    def to_dict(self) -> dict:
        if self.sources is None:
            return {'text': self.text}
        return {'text': self.text, 'sources': self.sources}


class RawDiscrepancy(BaseModel):
    """
    One red flag as emitted by the generator, after field coercion.

    claim falls back to `issue`, reality to `description`.
    severity stays raw here; the normalizer maps synonyms.
    """
    claim: str = ''
    reality: str = ''
    impact: str = ''
    severity: str = ''

    model_config = {"extra": "ignore"}

    @model_validator(mode='before')
    @classmethod
    def apply_aliases(cls, v):
        if not isinstance(v, dict):
            raise ValueError("discrepancy must be an object")
        return {
            'claim': _as_text(v.get('claim')) or _as_text(v.get('issue')),
            'reality': _as_text(v.get('reality')) or _as_text(v.get('description')),
            'impact': _as_text(v.get('impact')),
            'severity': _as_text(v.get('severity')),
        }


class ScoreAdjustment(BaseModel):
    """
    Generator-proposed truth index adjustment.

    delta is kept as received; the truth index gates decide whether it is usable.
    """
    delta: Any = None
    reason: str = ''

    model_config = {"extra": "ignore"}

    @field_validator('reason', mode='before')
    @classmethod
    def coerce_reason(cls, v):
        return _as_text(v)


class VerdictPayload(BaseModel):
    """Stage 4 narrative returned by the generator"""
    score_interpretation: str
    strengths: List[str]
    limitations: List[str]
    practical_impact: List[str] = []
    good_fit: List[str] = []
    consider_alternatives: List[str] = []
    score_adjustment: Optional[ScoreAdjustment] = None

    model_config = {"extra": "ignore"}

    @field_validator('score_interpretation', mode='before')
    @classmethod
    def require_interpretation(cls, v):
        text = _as_text(v)
        if not text:
            raise ValueError("score_interpretation is empty")
        return text

    @field_validator('strengths', 'limitations', mode='before')
    @classmethod
    def require_list(cls, v):
        if not isinstance(v, list):
            raise ValueError("expected an array")
        return _text_list(v)

    @field_validator('practical_impact', 'good_fit', 'consider_alternatives', mode='before')
    @classmethod
    def optional_list(cls, v):
        return _text_list(v)

    @field_validator('score_adjustment', mode='before')
    @classmethod
    def optional_adjustment(cls, v):
        return v if isinstance(v, dict) else None
