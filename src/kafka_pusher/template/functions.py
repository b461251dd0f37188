"""
Substitution function DSL.

Substitution values may embed one function call that is evaluated fresh on
every generation:

    {{@guid}}           16 random bytes as 8-4-4-4-12 lowercase hex
    {{@uuid}}           RFC 4122 version 4 UUID
    {{@now|FORMAT}}     current time; FORMAT defaults to RFC3339
    {{@rnd|N}}          N-digit zero-padded random number; N defaults to 6

Whitespace is allowed just inside the braces (``{{ @uuid }}``). A value that
holds a function token is replaced by the generated value as a whole; text
around the token is not kept. Put fixed prefixes in the template body
instead (``"order-{{.code}}"``).
A token that does not follow the grammar is left as literal text and only
reported at DEBUG level.

All randomness comes from the operating system CSPRNG (``secrets`` /
``os.urandom``), so concurrent callers never share generator state.
"""

import logging
import secrets
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Tuple

from .errors import EvaluationError

logger = logging.getLogger(__name__)


DEFAULT_RANDOM_DIGITS = 6
MAX_RANDOM_DIGITS = 18
DEFAULT_TIME_FORMAT = "RFC3339"

_TOKEN_OPEN = "{{"
_TOKEN_CLOSE = "}}"
_FUNCTION_SIGIL = "@"
_ARGUMENT_SEPARATOR = "|"


# ==============================================================================
# Lexer / Parser
# ==============================================================================

@dataclass(frozen=True)
class FunctionCall:
    """A parsed ``{{@name|argument}}`` token.

    ``start`` and ``end`` delimit the whole token (braces included) within
    the source string.
    """
    name: str
    argument: Optional[str]
    start: int
    end: int


def _is_integer(text: str) -> bool:
    digits = text[1:] if text[:1] in ("+", "-") else text
    return digits.isdigit() and digits.isascii()


def _valid_time_argument(text: str) -> bool:
    return not any(ch.isspace() or ch in "{}" for ch in text)


def _check_argument(name: str, argument: Optional[str]) -> Optional[str]:
    """Return a reason string if the argument is invalid for the function."""
    if name in ("guid", "uuid"):
        if argument is not None:
            return f"@{name} takes no argument"
        return None
    if not argument:
        return None
    if name == "rnd" and not _is_integer(argument):
        return f"@rnd argument must be an integer, got '{argument}'"
    if name == "now" and not _valid_time_argument(argument):
        return f"@now argument must not contain whitespace or braces, got '{argument}'"
    return None


def _iter_tokens(value: str) -> Iterator[Tuple[int, int, str]]:
    """Yield (start, end, body) for every ``{{ @... }}`` token in order."""
    pos = 0
    while True:
        start = value.find(_TOKEN_OPEN, pos)
        if start < 0:
            return
        close = value.find(_TOKEN_CLOSE, start + len(_TOKEN_OPEN))
        if close < 0:
            return
        body = value[start + len(_TOKEN_OPEN):close].strip()
        if body.startswith(_FUNCTION_SIGIL):
            yield start, close + len(_TOKEN_CLOSE), body[len(_FUNCTION_SIGIL):]
            pos = close + len(_TOKEN_CLOSE)
        else:
            pos = start + len(_TOKEN_OPEN)


def _parse_token(value: str, start: int, end: int, body: str) -> Optional[FunctionCall]:
    name_end = 0
    while name_end < len(body) and body[name_end].isascii() and body[name_end].isalpha():
        name_end += 1
    name, rest = body[:name_end], body[name_end:]

    if name not in _FUNCTIONS:
        logger.debug(f"Unknown substitution function in {value!r}, keeping literal")
        return None

    argument: Optional[str] = None
    if rest:
        if not rest.startswith(_ARGUMENT_SEPARATOR):
            logger.debug(f"Malformed substitution function in {value!r}, keeping literal")
            return None
        argument = rest[len(_ARGUMENT_SEPARATOR):]

    reason = _check_argument(name, argument)
    if reason:
        logger.debug(f"{reason} in {value!r}, keeping literal")
        return None

    return FunctionCall(name=name, argument=argument or None, start=start, end=end)


def parse_function(value: str) -> Optional[FunctionCall]:
    """
    Parse the function token that decides a substitution value.

    When a value holds several well-formed tokens, the function checked
    first wins (guid, uuid, now, rnd), then the leftmost occurrence.

    Args:
        value: Raw substitution string

    Returns:
        FunctionCall, or None if the value holds no well-formed function token
    """
    calls = [
        call for call in (_parse_token(value, *token) for token in _iter_tokens(value))
        if call is not None
    ]
    if not calls:
        return None
    priority = list(_FUNCTIONS)
    return min(calls, key=lambda call: (priority.index(call.name), call.start))


# ==============================================================================
# Random values
# ==============================================================================

def _random_bytes(count: int) -> bytes:
    try:
        return secrets.token_bytes(count)
    except (OSError, NotImplementedError) as e:
        raise EvaluationError(f"failed to generate random bytes: {e}") from e


def generate_guid() -> str:
    """16 random bytes formatted 8-4-4-4-12, no version/variant bits forced."""
    h = _random_bytes(16).hex()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def generate_uuid() -> str:
    """RFC 4122 version 4 UUID."""
    try:
        return str(uuid.uuid4())
    except (OSError, NotImplementedError) as e:
        raise EvaluationError(f"failed to generate uuid: {e}") from e


def generate_random_number(digits: int = DEFAULT_RANDOM_DIGITS) -> str:
    """
    Uniform random number in [0, 10**digits - 1], zero-padded to ``digits``.

    ``digits`` is clamped to MAX_RANDOM_DIGITS; zero or negative yields "0".
    """
    if digits <= 0:
        return "0"
    digits = min(digits, MAX_RANDOM_DIGITS)

    try:
        n = secrets.randbelow(10 ** digits)
    except (OSError, NotImplementedError) as e:
        raise EvaluationError(f"failed to generate random number: {e}") from e

    return f"{n:0{digits}d}"


# ==============================================================================
# Time formatting
# ==============================================================================

_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
_MONTHS = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)


def _day(m: datetime) -> str:
    return _WEEKDAYS[m.weekday()][:3]


def _month(m: datetime) -> str:
    return _MONTHS[m.month - 1][:3]


def _clock(m: datetime) -> str:
    return f"{m.hour:02d}:{m.minute:02d}:{m.second:02d}"


def _offset(m: datetime, colon: bool = False) -> str:
    total = int(m.utcoffset().total_seconds()) // 60
    sign = "-" if total < 0 else "+"
    hours, minutes = divmod(abs(total), 60)
    return f"{sign}{hours:02d}:{minutes:02d}" if colon else f"{sign}{hours:02d}{minutes:02d}"


def _zone(m: datetime) -> str:
    return m.tzname() or _offset(m)


def _rfc3339(m: datetime, fraction: str = "") -> str:
    zone = "Z" if not m.utcoffset() else _offset(m, colon=True)
    return (
        f"{m.year:04d}-{m.month:02d}-{m.day:02d}T{_clock(m)}{fraction}{zone}"
    )


_Formatter = Callable[[datetime, int], str]

TIME_FORMATS: Dict[str, _Formatter] = {
    "RFC822": lambda m, ns: f"{m.day:02d} {_month(m)} {m.year % 100:02d} {m.hour:02d}:{m.minute:02d} {_zone(m)}",
    "RFC822Z": lambda m, ns: f"{m.day:02d} {_month(m)} {m.year % 100:02d} {m.hour:02d}:{m.minute:02d} {_offset(m)}",
    "RFC850": lambda m, ns: f"{_WEEKDAYS[m.weekday()]}, {m.day:02d}-{_month(m)}-{m.year % 100:02d} {_clock(m)} {_zone(m)}",
    "RFC1123": lambda m, ns: f"{_day(m)}, {m.day:02d} {_month(m)} {m.year:04d} {_clock(m)} {_zone(m)}",
    "RFC1123Z": lambda m, ns: f"{_day(m)}, {m.day:02d} {_month(m)} {m.year:04d} {_clock(m)} {_offset(m)}",
    "RFC3339": lambda m, ns: _rfc3339(m),
    "RFC3339Nano": lambda m, ns: _rfc3339(
        m, ("." + f"{ns % 1_000_000_000:09d}".rstrip("0")) if ns % 1_000_000_000 else ""
    ),
    "Unix": lambda m, ns: str(ns // 1_000_000_000),
    "UnixMilli": lambda m, ns: str(ns // 1_000_000),
    "UnixNano": lambda m, ns: str(ns),
    "ANSIC": lambda m, ns: f"{_day(m)} {_month(m)} {m.day:>2} {_clock(m)} {m.year:04d}",
    "UnixDate": lambda m, ns: f"{_day(m)} {_month(m)} {m.day:>2} {_clock(m)} {_zone(m)} {m.year:04d}",
    "RubyDate": lambda m, ns: f"{_day(m)} {_month(m)} {m.day:02d} {_clock(m)} {_offset(m)} {m.year:04d}",
}

_TIME_FORMATS_BY_UPPER = {name.upper(): fn for name, fn in TIME_FORMATS.items()}


def format_time(
    fmt: str = DEFAULT_TIME_FORMAT,
    timestamp_ns: Optional[int] = None,
    tz: Optional[tzinfo] = None,
) -> str:
    """
    Format a point in time.

    Args:
        fmt: Named format (case-insensitive, see TIME_FORMATS) or a strftime pattern
        timestamp_ns: Nanoseconds since the epoch; defaults to now
        tz: Target time zone; defaults to the local zone

    Raises:
        EvaluationError: If a custom pattern is rejected by strftime
    """
    if timestamp_ns is None:
        timestamp_ns = time.time_ns()

    seconds, nanos = divmod(timestamp_ns, 1_000_000_000)
    moment = (
        datetime.fromtimestamp(seconds, tz=timezone.utc)
        .replace(microsecond=nanos // 1000)
        .astimezone(tz)
    )

    formatter = _TIME_FORMATS_BY_UPPER.get(fmt.upper())
    if formatter is not None:
        return formatter(moment, timestamp_ns)

    # Best effort: unknown names are applied as a strftime pattern
    try:
        return moment.strftime(fmt)
    except ValueError as e:
        raise EvaluationError(f"invalid time format '{fmt}': {e}") from e


# ==============================================================================
# Evaluation
# ==============================================================================

def _call_guid(argument: Optional[str]) -> str:
    return generate_guid()


def _call_uuid(argument: Optional[str]) -> str:
    return generate_uuid()


def _call_now(argument: Optional[str]) -> str:
    return format_time(argument or DEFAULT_TIME_FORMAT)


def _call_rnd(argument: Optional[str]) -> str:
    return generate_random_number(int(argument) if argument else DEFAULT_RANDOM_DIGITS)


_FUNCTIONS: Dict[str, Callable[[Optional[str]], str]] = {
    "guid": _call_guid,
    "uuid": _call_uuid,
    "now": _call_now,
    "rnd": _call_rnd,
}


def evaluate_value(value: Any) -> Any:
    """
    Evaluate a single substitution value.

    Non-string values and strings without a well-formed function token are
    returned unchanged. Otherwise the whole value becomes the generated
    string.

    Raises:
        EvaluationError: If the function cannot produce a value
    """
    if not isinstance(value, str):
        return value

    call = parse_function(value)
    if call is None:
        return value

    return _FUNCTIONS[call.name](call.argument)


def evaluate_substitutions(substitution: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Evaluate every value of a substitution mapping into a new dict.

    The input is never modified. On failure nothing is returned.

    Raises:
        EvaluationError: Naming the first key that failed
    """
    result: Dict[str, Any] = {}
    for key, value in substitution.items():
        try:
            result[key] = evaluate_value(value)
        except EvaluationError as e:
            raise EvaluationError(f"failed to process key {key}: {e}") from e
    return result
