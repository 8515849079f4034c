"""
Form model

Mutable tree of form items built from a Questionnaire and filled from a
QuestionnaireResponse.
"""
from .models import (
    AnswerOption,
    Cardinality,
    DataType,
    DisplayControl,
    FormData,
    FormItem,
    Unit,
)

__all__ = [
    "AnswerOption",
    "Cardinality",
    "DataType",
    "DisplayControl",
    "FormData",
    "FormItem",
    "Unit",
]
