"""
Message rendering: JSON serialization plus ``{{.name}}`` interpolation.

The template body is serialized to compact JSON first, so placeholders can
only appear inside JSON string literals. Substituted values are therefore
inserted JSON-escaped, which keeps the output valid JSON whatever the value
contains.

A placeholder is ``{{.name}}`` with optional whitespace inside the braces.
Names start with a letter or underscore and may then contain letters,
digits, underscores and hyphens (``{{.order-id}}``); anything else between
double braces is a RenderError.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, List, Mapping, Union

from .errors import RenderError

logger = logging.getLogger(__name__)

_ACTION_PATTERN = re.compile(r'\{\{(.*?)\}\}', re.DOTALL)
_PLACEHOLDER_PATTERN = re.compile(r'^\s*\.([A-Za-z_][A-Za-z0-9_-]*)\s*$')


@dataclass(frozen=True)
class Placeholder:
    """A ``{{.name}}`` reference found in template text."""
    name: str


Segment = Union[str, Placeholder]


def serialize_template(template: Mapping[str, Any]) -> str:
    """
    Serialize the template body to compact JSON text.

    Raises:
        RenderError: If the body holds values JSON cannot represent
    """
    try:
        return json.dumps(
            template,
            separators=(",", ":"),
            ensure_ascii=False,
            allow_nan=False,
        )
    except (TypeError, ValueError) as e:
        raise RenderError(f"failed to marshal template: {e}") from e


def parse_segments(text: str) -> List[Segment]:
    """
    Split template text into literal strings and placeholders.

    Raises:
        RenderError: On an unterminated ``{{`` or an action that is not a
            simple ``.name`` reference
    """
    segments: List[Segment] = []
    pos = 0

    for match in _ACTION_PATTERN.finditer(text):
        literal = text[pos:match.start()]
        if literal:
            segments.append(literal)

        placeholder = _PLACEHOLDER_PATTERN.match(match.group(1))
        if placeholder is None:
            raise RenderError(
                f"failed to parse template: unsupported action '{match.group(0)}' "
                f"at offset {match.start()}"
            )
        segments.append(Placeholder(placeholder.group(1)))
        pos = match.end()

    tail = text[pos:]
    if "{{" in tail:
        raise RenderError(
            f"failed to parse template: unclosed action at offset {pos + tail.index('{{')}"
        )
    if tail:
        segments.append(tail)

    return segments


def find_placeholders(text: str) -> List[str]:
    """Names referenced by the template text, in order of appearance."""
    return [seg.name for seg in parse_segments(text) if isinstance(seg, Placeholder)]


def _escape(value: Any) -> str:
    if not isinstance(value, str):
        value = json.dumps(value, separators=(",", ":"), ensure_ascii=False)
    return json.dumps(value, ensure_ascii=False)[1:-1]


def render(text: str, context: Mapping[str, Any]) -> bytes:
    """
    Interpolate evaluated substitution values into serialized template text.

    Args:
        text: Output of serialize_template
        context: Evaluated substitution mapping (the only lookup source)

    Returns:
        UTF-8 encoded message

    Raises:
        RenderError: If the text does not parse or a placeholder names a
            key missing from ``context``
    """
    parts: List[str] = []
    for segment in parse_segments(text):
        if isinstance(segment, str):
            parts.append(segment)
            continue
        if segment.name not in context:
            raise RenderError(
                f"failed to execute template: no substitution named '{segment.name}'"
            )
        parts.append(_escape(context[segment.name]))

    return "".join(parts).encode("utf-8")
