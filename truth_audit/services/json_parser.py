"""
LLM JSON parser - repair-then-parse ladder for generator output

Generator text is frequently wrapped in Markdown fences, carries trailing
commas, or is cut off mid-array when the token budget runs out. Each
strategy below is a pure function str -> parsed value (or None). The
ladder tries them in order and the first success wins; anything past the
first strategy marks the result as partial.

Strategy order:
1. direct             - strip fences, json.loads
2. structural_repair  - trailing commas, unterminated string, missing closers
3. object_substring   - first '{' .. last '}', direct then repaired
4. array_substring    - first '[' .. last ']', direct then repaired
5. partial_array      - complete objects from a truncated "red_flags": [ ...
"""
import json
import re
import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

ParseStrategy = Callable[[str], Optional[Any]]

_FENCE_RE = re.compile(r'^```(?:json|JSON)?\s*|\s*```$')
_TRAILING_COMMA_RE = re.compile(r',(\s*[}\]])')

_CLOSERS = {'{': '}', '[': ']'}


@dataclass
class ParseOutcome:
    """Result of running the ladder over one generator response."""
    data: Any = None
    strategy: Optional[str] = None
    partial: bool = False
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.data is not None

    @property
    def parse_status(self) -> str:
        if not self.ok:
            return "partial"
        return "partial" if self.partial else "ok"


def strip_code_fences(text: str) -> str:
    """Remove a leading ```json fence and a trailing ``` fence."""
    return _FENCE_RE.sub('', text.strip()).strip()


def _loads(text: str) -> Optional[Any]:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, ValueError):
        return None


def repair_json(text: str) -> str:
    """
    Structural repair of truncated or sloppy JSON.

    Strips trailing commas, closes an unterminated string, drops a dangling
    comma, fills a dangling colon with null, and appends closers for every
    bracket still open (tracked as a stack, skipping string contents).
    """
    repaired = _TRAILING_COMMA_RE.sub(r'\1', text.strip())

    stack: List[str] = []
    in_string = False
    escaped = False
    for ch in repaired:
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in _CLOSERS:
            stack.append(_CLOSERS[ch])
        elif ch in '}]' and stack and stack[-1] == ch:
            stack.pop()

    if in_string:
        if escaped:
            repaired = repaired[:-1]
        repaired += '"'

    repaired = repaired.rstrip()
    if repaired.endswith(','):
        repaired = repaired[:-1]
    elif repaired.endswith(':'):
        repaired += ' null'

    repaired += ''.join(reversed(stack))
    return _TRAILING_COMMA_RE.sub(r'\1', repaired)


# =============================================================================
# STRATEGIES
# =============================================================================

def parse_direct(text: str) -> Optional[Any]:
    return _loads(strip_code_fences(text))


def parse_structural_repair(text: str) -> Optional[Any]:
    return _loads(repair_json(strip_code_fences(text)))


def _substring_strategy(opener: str, closer: str) -> ParseStrategy:
    def parse_substring(text: str) -> Optional[Any]:
        start = text.find(opener)
        end = text.rfind(closer)
        if start == -1:
            return None
        if end > start:
            value = _loads(text[start:end + 1])
            if value is not None:
                return value
        return _loads(repair_json(text[start:]))
    return parse_substring


parse_object_substring = _substring_strategy('{', '}')
parse_array_substring = _substring_strategy('[', ']')


def _complete_objects(text: str, start: int) -> Tuple[List[Any], bool]:
    """
    Collect complete top-level objects of an array body starting at `start`.

    Returns (objects, closed) where closed means the array's ']' was reached.
    """
    items: List[Any] = []
    depth = 0
    obj_start = -1
    in_string = False
    escaped = False

    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == '\\':
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in '{[':
            if depth == 0 and ch == '{':
                obj_start = i
            depth += 1
        elif ch in '}]':
            if depth == 0:
                return items, True
            depth -= 1
            if depth == 0 and obj_start != -1:
                value = _loads(text[obj_start:i + 1])
                if isinstance(value, dict):
                    items.append(value)
                obj_start = -1

    return items, False


def partial_array_strategy(field: str) -> ParseStrategy:
    """Recover the complete items of a truncated `"<field>": [` array."""
    pattern = re.compile(r'"' + re.escape(field) + r'"\s*:\s*\[')

    def parse_partial_array(text: str) -> Optional[Any]:
        match = pattern.search(text)
        if not match:
            return None
        items, _ = _complete_objects(text, match.end())
        if not items:
            return None
        return {field: items}
    return parse_partial_array


DEFAULT_STRATEGIES: List[Tuple[str, ParseStrategy]] = [
    ('direct', parse_direct),
    ('structural_repair', parse_structural_repair),
    ('object_substring', parse_object_substring),
    ('array_substring', parse_array_substring),
    ('partial_array', partial_array_strategy('red_flags')),
]


def parse_llm_json(
    text: Optional[str],
    strategies: Optional[List[Tuple[str, ParseStrategy]]] = None
) -> ParseOutcome:
    """
    Run the repair ladder over generator text.

    Returns:
        ParseOutcome with data from the first successful strategy, or with
        error set when every strategy failed
    """
    if not text or not text.strip():
        return ParseOutcome(error="empty response")

    ladder = strategies if strategies is not None else DEFAULT_STRATEGIES
    for position, (name, strategy) in enumerate(ladder):
        value = strategy(text)
        if value is not None:
            if position > 0:
                logger.info(f"🔧 Recovered generator JSON via {name}")
            return ParseOutcome(data=value, strategy=name, partial=position > 0)

    snippet = text.strip()[:120].replace('\n', ' ')
    logger.warning(f"⚠️ Unparseable generator output: {snippet!r}")
    return ParseOutcome(error=f"no strategy could parse response ({len(text)} chars)")


def build_strict_json_prompt(prompt: str, shape_hint: str) -> str:
    """Append strict JSON-only output instructions to a stage prompt."""
    return (
        f"{prompt}\n\n"
        "Respond with a single JSON object and nothing else. "
        "No Markdown fences, no commentary, no trailing commas.\n"
        f"Shape:\n{shape_hint}"
    )
