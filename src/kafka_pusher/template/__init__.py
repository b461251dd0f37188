"""
Message template engine.

Loads a JSON or YAML template, evaluates substitution functions and renders
JSON messages.
"""

from .errors import (
    TemplateError,
    LoadError,
    EvaluationError,
    RenderError,
)
from .loader import (
    Template,
    TemplateFormat,
    detect_format,
    load_template,
    parse_template,
)
from .functions import (
    FunctionCall,
    TIME_FORMATS,
    evaluate_substitutions,
    evaluate_value,
    format_time,
    generate_guid,
    generate_random_number,
    generate_uuid,
    parse_function,
)
from .renderer import find_placeholders, render, serialize_template
from .generator import Generator

__all__ = [
    'TemplateError',
    'LoadError',
    'EvaluationError',
    'RenderError',
    'Template',
    'TemplateFormat',
    'detect_format',
    'load_template',
    'parse_template',
    'FunctionCall',
    'TIME_FORMATS',
    'evaluate_substitutions',
    'evaluate_value',
    'format_time',
    'generate_guid',
    'generate_random_number',
    'generate_uuid',
    'parse_function',
    'find_placeholders',
    'render',
    'serialize_template',
    'Generator',
]
