"""
Value Importer

Turns typed FHIR answer payloads (`valueCoding`, `valueQuantity`,
`initialString`, ...) into the values stored on a form item, according to the
item's data type and answer cardinality.

Payloads that cannot be accepted (a Coding not in the answer list, a Quantity
in a unit the question does not accept) are dropped without an error.
"""
import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from sdc_importer.form.models import AnswerOption, DataType, FormItem, Unit
from .codes import UnitConverter, match_unit, to_fhir_code_system
from .constants import DATA_TYPE_TO_VALUE_FIELD

logger = logging.getLogger(__name__)

CODED_TYPES = (DataType.CNE, DataType.CWE)
NUMERIC_TYPES = (DataType.INT, DataType.REAL)
QUANTITY_TYPES = (DataType.QTY, DataType.INT, DataType.REAL)


@dataclass
class FHIRValue:
    """A single typed payload, e.g. kind="Coding" for a valueCoding."""
    kind: str
    payload: Any

    @property
    def is_quantity(self) -> bool:
        return self.kind == "Quantity"


def get_value_with_prefix(obj: Any, prefix: str) -> Optional[FHIRValue]:
    """
    Get the FHIR value whose key starts with `prefix` ("value", "initial").

    Only one such key is expected on a well-formed object; the first one
    found is used. Complex payloads are copied so callers can modify them.
    """
    if not isinstance(obj, dict):
        return None
    for key, payload in obj.items():
        if key.startswith(prefix) and len(key) > len(prefix):
            if isinstance(payload, (dict, list)):
                payload = copy.deepcopy(payload)
            return FHIRValue(kind=key[len(prefix):], payload=payload)
    return None


def values_from_answers(answers: Iterable[Dict[str, Any]], prefix: str = "value") -> List[FHIRValue]:
    """Extract the typed payloads of QuestionnaireResponse answers (or initial entries)."""
    values = []
    for answer in answers or []:
        value = get_value_with_prefix(answer, prefix)
        if value is not None:
            values.append(value)
    return values


def _codings_of(value: FHIRValue) -> Optional[List[Dict[str, Any]]]:
    if value.kind == "CodeableConcept" and isinstance(value.payload, dict):
        return value.payload.get("coding") or []
    if value.kind == "Coding" and isinstance(value.payload, dict):
        return [value.payload]
    return None


def _find_answer_option(item: FormItem, codings: List[Dict[str, Any]]) -> Optional[AnswerOption]:
    for coding in codings:
        system = coding.get("system")
        for option in item.answers:
            option_system = to_fhir_code_system(option.code_system) if option.code_system else None
            same_system = (not system and not option_system) or system == option_system
            if same_system and coding.get("code") == option.code:
                return option
    return None


def _accept(item: FormItem, value: FHIRValue) -> Any:
    data_type = item.data_type
    if data_type in CODED_TYPES:
        codings = _codings_of(value)
        if codings is None:
            # plain strings are "other" answers, only allowed for open choices
            return value.payload if data_type == DataType.CWE else None
        option = _find_answer_option(item, codings)
        if option is None:
            logger.debug("No answer of %s matches %s", item.link_id, codings)
        return option
    if value.is_quantity and data_type in QUANTITY_TYPES:
        if isinstance(value.payload, dict):
            return value.payload.get("value")
        return None
    return value.payload


def import_values(item: FormItem, values: List[FHIRValue], as_default: bool = False) -> None:
    """
    Assign FHIR values to a form item.

    Args:
        item: the form item receiving the values
        values: typed payloads (Coding, Quantity, string, ...)
        as_default: set `default_answer` instead of `value`
    """
    answers = []
    for value in values:
        answer = _accept(item, value)
        if answer is not None:
            answers.append(answer)

    if item.answer_repeats:
        result = answers
    else:
        result = answers[0] if answers else None

    if as_default:
        item.default_answer = result
    else:
        item.value = result


def reconcile_quantity(
    item: FormItem, value: FHIRValue, converter: Optional[UnitConverter] = None
) -> Optional[FHIRValue]:
    """
    Check a Quantity against the item's units.

    Returns the (possibly converted) value and sets `item.unit`, or None when
    the unit is not acceptable. Items without a unit list accept any unit.
    """
    quantity = value.payload if isinstance(value.payload, dict) else {}
    if not item.units:
        unit_name = quantity.get("unit") or quantity.get("code")
        if unit_name:
            item.unit = Unit(name=unit_name, code=quantity.get("code"),
                             system=quantity.get("system"))
        return value

    match = match_unit(quantity, item.units, converter)
    if not match.matched:
        logger.debug("Rejected %s for %s: unit mismatch", quantity, item.link_id)
        return None
    item.unit = match.unit
    if match.converted:
        quantity = dict(quantity, value=match.value, code=match.code)
    return FHIRValue(kind=value.kind, payload=quantity)


def setup_value_and_unit(
    item: FormItem,
    values: List[FHIRValue],
    converter: Optional[UnitConverter] = None,
    as_default: bool = False,
) -> None:
    """Assign answer values to an item, reconciling quantity units first."""
    accepted = []
    for value in values:
        if value.is_quantity and item.data_type in QUANTITY_TYPES:
            value = reconcile_quantity(item, value, converter)
            if value is None:
                continue
        accepted.append(value)
    import_values(item, accepted, as_default=as_default)


def import_observation_value(
    item: FormItem, observation: Dict[str, Any], converter: Optional[UnitConverter] = None
) -> None:
    """
    Import an Observation's value into a form item.

    The value field is chosen from the item's data type. INT and REAL items
    also accept a valueQuantity, whose unit has to fit the item's units.
    """
    value = None
    field_type = DATA_TYPE_TO_VALUE_FIELD.get(item.data_type)
    # Questionnaire uses Coding where Observation uses CodeableConcept
    if field_type == "Coding":
        field_type = "CodeableConcept"
    if field_type and observation.get("value" + field_type) is not None:
        value = FHIRValue(kind=field_type,
                          payload=copy.deepcopy(observation["value" + field_type]))
    if value is None and item.data_type in NUMERIC_TYPES and observation.get("valueQuantity"):
        value = FHIRValue(kind="Quantity", payload=copy.deepcopy(observation["valueQuantity"]))
    if value is None:
        return

    if value.is_quantity and item.units:
        value = reconcile_quantity(item, value, converter)
        if value is None:
            return
    import_values(item, [value])
