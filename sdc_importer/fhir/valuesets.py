"""
ValueSet -> answer list conversion.

Expanded ValueSets (from a terminology server or contained in the
Questionnaire) are turned into form answer options. Only the expansion
entries are read; each one is parsed with the fhir.resources R4B
`ValueSetExpansionContains` model, so resource-level fields such as
`status` or `expansion.timestamp` are not required.
"""
import logging
from typing import Any, Dict, List, Optional

from fhir.resources.R4B.valueset import ValueSetExpansionContains

from sdc_importer.form.models import AnswerOption
from .codes import to_internal_code_system
from .constants import EXT_ORDINAL_VALUE, EXT_VALUESET_ORDINAL_VALUE

logger = logging.getLogger(__name__)

ORDINAL_EXTENSIONS = (EXT_VALUESET_ORDINAL_VALUE, EXT_ORDINAL_VALUE)


def parse_expansion_entry(entry: Dict[str, Any]) -> ValueSetExpansionContains:
    """Parse one `expansion.contains` entry; raises a pydantic ValidationError if malformed."""
    return ValueSetExpansionContains(**entry)


def _score(entry: ValueSetExpansionContains) -> Optional[float]:
    for extension in entry.extension or []:
        if extension.url in ORDINAL_EXTENSIONS and extension.valueDecimal is not None:
            return float(extension.valueDecimal)
    return None


def answers_from_value_set(payload: Dict[str, Any]) -> Optional[List[AnswerOption]]:
    """
    Convert an expanded ValueSet into answer options.

    Entries that cannot be parsed are skipped.

    Returns:
        The answer list, or None when the ValueSet has no usable expansion
        entries
    """
    expansion = payload.get("expansion") if isinstance(payload, dict) else None
    if not isinstance(expansion, dict) or not isinstance(expansion.get("contains"), list):
        return None

    answers = []
    for raw_entry in expansion["contains"]:
        if not isinstance(raw_entry, dict):
            continue
        try:
            entry = parse_expansion_entry(raw_entry)
        except ValueError as e:
            logger.warning("Skipping malformed expansion entry of ValueSet %s: %s",
                           payload.get("id") or payload.get("url"), e)
            continue
        answers.append(AnswerOption(
            code=entry.code,
            text=entry.display,
            code_system=to_internal_code_system(entry.system),
            score=_score(entry),
        ))
    return answers or None
