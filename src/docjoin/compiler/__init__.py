"""Aggregation pipeline compilation for docjoin."""

from docjoin.compiler.document_schema import build_validator
from docjoin.compiler.pipeline import CompilationPipeline, CompilationResult
from docjoin.compiler.relationship import RelationshipResolver, Stage

__all__ = [
    "CompilationPipeline",
    "CompilationResult",
    "RelationshipResolver",
    "Stage",
    "build_validator",
]
