"""
FHIR SDC Import Module

Converts FHIR R4 SDC Questionnaires into form data and merges
QuestionnaireResponse answers back into it.

Components:
- codes: code system names and unit reconciliation
- values: typed answer import
- importer: Questionnaire -> form
- response_merge: QuestionnaireResponse -> form values
- valuesets: expanded ValueSet -> answer list
"""
from .codes import (
    ConversionResult,
    NoUnitConversion,
    UnitConverter,
    UnitMatch,
    match_unit,
    significant_digits,
    to_fhir_code_system,
    to_internal_code_system,
)
from .values import FHIRValue, import_observation_value, import_values
from .importer import QuestionnaireImporter
from .response_merge import QuestionnaireResponseMerger, merge_questionnaire_response
from .valuesets import answers_from_value_set

__all__ = [
    "ConversionResult",
    "NoUnitConversion",
    "UnitConverter",
    "UnitMatch",
    "match_unit",
    "significant_digits",
    "to_fhir_code_system",
    "to_internal_code_system",
    "FHIRValue",
    "import_observation_value",
    "import_values",
    "QuestionnaireImporter",
    "QuestionnaireResponseMerger",
    "merge_questionnaire_response",
    "answers_from_value_set",
]
