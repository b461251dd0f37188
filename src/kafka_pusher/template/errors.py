"""
Exception hierarchy for the message template engine.

Every public operation of the engine raises exactly one of these, chained
(``raise ... from``) to the underlying cause. No partial output is returned
alongside an error.
"""


class TemplateError(Exception):
    """Base exception for template engine errors."""
    pass


class LoadError(TemplateError):
    """Raised when a template file cannot be read or parsed.

    Fatal to construction: no Generator is produced.
    """
    pass


class EvaluationError(TemplateError):
    """Raised when a substitution function cannot produce a value.

    In practice this means the secure randomness source failed, which points
    at a broken host rather than a recoverable condition.
    """
    pass


class RenderError(TemplateError):
    """Raised when the serialized template cannot be interpolated.

    Covers malformed interpolation actions and placeholders that reference a
    name missing from the substitution mapping.
    """
    pass
