"""
Terminology resolution for coded questions.

Each expander follows a standardized interface:
- Defined by abstract ValueSetExpander base class
- Raises on failure; AnswerSetLoader turns failures into results or errors
- Independently testable
"""
from .base import ValueSetExpander, expansion_url
from .expander import FHIRValueSetExpander, ValueSetExpansionError
from .answer_sets import AnswerSetCache, AnswerSetLoader, AnswerSetResult

__all__ = [
    "ValueSetExpander",
    "expansion_url",
    "FHIRValueSetExpander",
    "ValueSetExpansionError",
    "AnswerSetCache",
    "AnswerSetLoader",
    "AnswerSetResult",
]
