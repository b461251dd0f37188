"""
Template loading for JSON and YAML message templates.

A template file holds a top-level mapping with two keys:

    substitution:   name -> literal value or DSL function string
    template:       message body whose string leaves reference ``{{.name}}``

Format selection:
- ``.json`` extension (or explicit JSON hint): JSON only
- ``.yaml`` / ``.yml`` extension (or explicit YAML hint): YAML only
- anything else: YAML first, then JSON; if both fail, both errors are reported
"""

import json
import logging
import re
from datetime import date, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, FrozenSet, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, JsonValue, ValidationError

from .errors import LoadError

logger = logging.getLogger(__name__)


class TemplateFormat(str, Enum):
    """Serialization formats a template file can use."""
    JSON = "json"
    YAML = "yaml"


_EXTENSION_FORMATS: Dict[str, TemplateFormat] = {
    ".json": TemplateFormat.JSON,
    ".yaml": TemplateFormat.YAML,
    ".yml": TemplateFormat.YAML,
}


class Template(BaseModel):
    """Loaded message template: substitution definitions plus message body.

    Frozen after validation. Values are restricted to what JSON can carry
    (null, bool, number, string, array, object).
    """
    model_config = ConfigDict(frozen=True)

    substitution: Dict[str, JsonValue] = Field(default_factory=dict)
    template: Dict[str, JsonValue]


def detect_format(path: Union[str, Path]) -> Optional[TemplateFormat]:
    """Return the format implied by a file extension, or None if unknown."""
    return _EXTENSION_FORMATS.get(Path(path).suffix.lower())


def _coerce_format(fmt: Union[str, TemplateFormat, None]) -> Optional[TemplateFormat]:
    if fmt is None or isinstance(fmt, TemplateFormat):
        return fmt
    try:
        return TemplateFormat(fmt.lower())
    except ValueError:
        raise LoadError(
            f"Unknown template format: '{fmt}'. "
            f"Available formats: {', '.join(f.value for f in TemplateFormat)}"
        )


class _TemplateYamlLoader(yaml.SafeLoader):
    """SafeLoader that also reads YAML 1.2 exponent floats (``1e5``, ``2E-3``).

    The YAML 1.1 resolver needs a dot and a signed exponent, so plain JSON
    numbers such as ``1e5`` would otherwise load as strings.
    """


_TemplateYamlLoader.add_implicit_resolver(
    'tag:yaml.org,2002:float',
    re.compile(r'^[-+]?(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)[eE][-+]?[0-9]+$'),
    list('-+0123456789.'),
)


def _normalize_key(key: Any) -> str:
    if isinstance(key, str):
        return key
    if isinstance(key, bool):
        return "true" if key else "false"
    if key is None:
        return "null"
    return str(key)


def _normalize(value: Any, _path: FrozenSet[int] = frozenset()) -> Any:
    """Map YAML-only scalars onto JSON-compatible ones.

    YAML can yield timestamps and non-string mapping keys; both are turned
    into strings here so the structure survives JSON serialization.

    Raises:
        ValueError: If a YAML alias makes the document contain itself
    """
    if isinstance(value, (dict, list)):
        if id(value) in _path:
            raise ValueError("template contains a recursive alias")
        _path = _path | {id(value)}
    if isinstance(value, dict):
        return {_normalize_key(k): _normalize(v, _path) for k, v in value.items()}
    if isinstance(value, list):
        return [_normalize(item, _path) for item in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    return value


def _build_template(document: Any) -> Template:
    if not isinstance(document, dict):
        raise ValueError(
            f"template document must be a mapping, got {type(document).__name__}"
        )
    return Template.model_validate(_normalize(document))


def _parse_json(data: bytes) -> Template:
    return _build_template(json.loads(data))


def _parse_yaml(data: bytes) -> Template:
    return _build_template(yaml.load(data, Loader=_TemplateYamlLoader))


# RecursionError: nesting deeper than the interpreter stack allows
_PARSE_ERRORS = (ValueError, TypeError, RecursionError, yaml.YAMLError, ValidationError)


def parse_template(
    data: bytes,
    fmt: Union[str, TemplateFormat, None] = None,
) -> Template:
    """
    Parse raw template bytes.

    Args:
        data: File contents
        fmt: Explicit format, or None to auto-detect (YAML, then JSON)

    Returns:
        Validated Template

    Raises:
        LoadError: If the content does not parse in the selected format(s)
    """
    fmt = _coerce_format(fmt)

    if fmt is TemplateFormat.JSON:
        try:
            return _parse_json(data)
        except _PARSE_ERRORS as e:
            raise LoadError(f"failed to parse JSON template: {e}") from e

    if fmt is TemplateFormat.YAML:
        try:
            return _parse_yaml(data)
        except _PARSE_ERRORS as e:
            raise LoadError(f"failed to parse YAML template: {e}") from e

    try:
        return _parse_yaml(data)
    except _PARSE_ERRORS as yaml_error:
        logger.debug(f"YAML parse failed, retrying as JSON: {yaml_error}")
        try:
            return _parse_json(data)
        except _PARSE_ERRORS as json_error:
            raise LoadError(
                "failed to parse template as YAML or JSON: "
                f"YAML error: {yaml_error}, JSON error: {json_error}"
            ) from json_error


def load_template(
    path: Union[str, Path],
    fmt: Union[str, TemplateFormat, None] = None,
) -> Template:
    """
    Load a template file from disk.

    The format hint wins over the file extension; with neither, the content
    is auto-detected.

    Raises:
        LoadError: If the file is unreadable or its content does not parse
    """
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise LoadError(f"failed to read template file {path}: {e}") from e

    template = parse_template(data, fmt if fmt is not None else detect_format(path))
    logger.info(
        f"Loaded template {path} "
        f"({len(template.substitution)} substitutions, {len(template.template)} top-level fields)"
    )
    return template
