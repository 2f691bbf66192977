"""Selector query language and structural extraction from HTML documents."""

from .query_parser import (
    CompiledQuery,
    ExtractionMode,
    PostOp,
    QueryPlan,
    QueryStep,
    StepKind,
    as_plan,
    compile_query,
    parse_argument,
    parse_query,
)
from .structural_extractor import (
    StructuralExtractor,
    json_to_markup,
    text_with_breaks,
    TEXT_FALLBACK,
    TEXT_OR_HTML_FALLBACK,
    HTML_OR_TEXT_FALLBACK,
    HREF_FALLBACK,
    SRC_FALLBACK,
)

__all__ = [
    'CompiledQuery',
    'ExtractionMode',
    'PostOp',
    'QueryPlan',
    'QueryStep',
    'StepKind',
    'as_plan',
    'compile_query',
    'parse_argument',
    'parse_query',
    'StructuralExtractor',
    'json_to_markup',
    'text_with_breaks',
    'TEXT_FALLBACK',
    'TEXT_OR_HTML_FALLBACK',
    'HTML_OR_TEXT_FALLBACK',
    'HREF_FALLBACK',
    'SRC_FALLBACK',
]
