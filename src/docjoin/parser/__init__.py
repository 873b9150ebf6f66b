"""Schema document parsing with line fidelity."""

from docjoin.parser.loader import SourceMap, TrackedLoader, YAMLParseError, YAMLSafetyError
from docjoin.parser.resolver import SchemaResolver
from docjoin.parser.validator import SchemaValidator

__all__ = [
    "SchemaResolver",
    "SchemaValidator",
    "SourceMap",
    "TrackedLoader",
    "YAMLParseError",
    "YAMLSafetyError",
]
