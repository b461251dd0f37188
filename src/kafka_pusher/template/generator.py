"""
Thread-safe message generator.

Usage:
    from kafka_pusher.template import Generator

    generator = Generator.from_file("templates/order.yaml")
    payload = generator.generate()        # bytes, fresh values every call

A Generator is built once and never changes afterwards. ``generate()`` keeps
all per-call data local and draws randomness from the OS CSPRNG, so any
number of threads may call it at once without locking.
"""

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, List, Mapping, Optional, Union

from .errors import EvaluationError, LoadError, RenderError
from .functions import evaluate_substitutions
from .loader import Template, TemplateFormat, load_template
from .renderer import find_placeholders, render, serialize_template

logger = logging.getLogger(__name__)


class Generator:
    """Renders messages from an immutable Template."""

    def __init__(self, template: Template, source: Optional[str] = None):
        """
        Initialize from a loaded template.

        Args:
            template: Validated Template
            source: Where the template came from, for log messages

        Raises:
            LoadError: If the template body cannot be serialized to JSON
        """
        # Nested values are never shared with the caller
        self._template = template.model_copy(deep=True)
        self._source = source or "<memory>"
        self._substitution: Mapping[str, Any] = MappingProxyType(self._template.substitution)

        try:
            self._template_text = serialize_template(self._template.template)
        except RenderError as e:
            raise LoadError(f"template is not representable as JSON: {e}") from e

        try:
            self._placeholders = tuple(find_placeholders(self._template_text))
        except RenderError as e:
            # Surfaces again on every generate() call
            logger.warning(f"Template {self._source} will not render: {e}")
            self._placeholders = ()

        missing = sorted(set(self._placeholders) - set(self._substitution))
        if missing:
            logger.warning(
                f"Template {self._source} references undefined substitutions: "
                f"{', '.join(missing)}"
            )

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        fmt: Union[str, TemplateFormat, None] = None,
    ) -> "Generator":
        """
        Create a generator from a template file.

        Args:
            path: JSON or YAML template file
            fmt: Optional explicit format, overriding the file extension

        Raises:
            LoadError: If the file is unreadable or invalid
        """
        return cls(load_template(path, fmt), source=str(path))

    @property
    def template(self) -> Template:
        """A deep copy of the loaded template; editing it does not affect generation."""
        return self._template.model_copy(deep=True)

    @property
    def substitution_keys(self) -> List[str]:
        return list(self._substitution)

    @property
    def placeholders(self) -> List[str]:
        return list(self._placeholders)

    def generate(self) -> bytes:
        """
        Render one message with freshly evaluated substitution values.

        Returns:
            UTF-8 encoded JSON message

        Raises:
            EvaluationError: If a substitution function fails
            RenderError: If the template cannot be interpolated
        """
        try:
            values = evaluate_substitutions(self._substitution)
        except EvaluationError as e:
            raise EvaluationError(f"failed to build substitutions: {e}") from e

        try:
            message = render(self._template_text, values)
        except RenderError as e:
            raise RenderError(f"failed to apply substitutions: {e}") from e

        logger.debug(f"Generated {len(message)} bytes from {self._source}")
        return message

    def generate_batch(self, count: int) -> List[bytes]:
        """
        Generate ``count`` independent messages.

        The first failure is raised and the messages produced so far are
        discarded; there is no atomicity across the batch.
        """
        if count < 0:
            raise ValueError(f"count must be non-negative, got {count}")
        return [self.generate() for _ in range(count)]

    def __repr__(self) -> str:
        return (
            f"Generator(source={self._source!r}, "
            f"substitutions={len(self._substitution)}, placeholders={len(self._placeholders)})"
        )

