"""
kafka-pusher: generate synthetic JSON messages from templates and push them
to Kafka.
"""

from .template import Generator, LoadError, EvaluationError, RenderError, TemplateError

__version__ = "0.1.0"

__all__ = [
    'Generator',
    'TemplateError',
    'LoadError',
    'EvaluationError',
    'RenderError',
    '__version__',
]
