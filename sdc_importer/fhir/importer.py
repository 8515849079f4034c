"""
Questionnaire Importer

Converts a FHIR SDC Questionnaire (R4 JSON) into a form-model tree.

Per item:
1. Data type (Questionnaire item type -> form data type)
2. Question code and linkId
3. Question/answer cardinality (repeats, required, min/maxOccurs)
4. Display control (itemControl extension)
5. Terminology server, answer list or answerValueSet
6. Units, restrictions, hidden flag
7. Initial values as default answers
8. Children, in source order

Extensions that are missing or malformed are treated as absent.
"""
import copy
import logging
from typing import Any, Dict, List, Optional

from sdc_importer.form.models import (
    AnswerOption,
    DataType,
    DisplayControl,
    FormData,
    FormItem,
    UNBOUNDED,
    Unit,
)
from .codes import UnitConverter, to_internal_code_system
from .constants import (
    ANSWER_LAYOUT_COMBO_BOX,
    ANSWER_LAYOUT_RADIO_CHECKBOX,
    COMBO_BOX_CODES,
    DEFAULT_DATA_TYPE,
    EXT_ARGONAUT_SCORE,
    EXT_HIDDEN,
    EXT_ITEM_CONTROL,
    EXT_MAX_OCCURS,
    EXT_MIN_OCCURS,
    EXT_OPTION_PREFIX,
    EXT_ORDINAL_VALUE,
    EXT_TERMINOLOGY_SERVER,
    EXT_UNIT,
    EXT_UNIT_OPTION,
    FHIR_VERSION,
    FORM_LEVEL_FIELDS,
    HORIZONTAL_TABLE_CODES,
    ITEM_TYPE_TO_DATA_TYPE,
    LINK_ID_CODE_SYSTEM,
    MATRIX_TABLE_CODES,
    QUESTION_LAYOUT_HORIZONTAL,
    QUESTION_LAYOUT_MATRIX,
    RADIO_CHECKBOX_CODES,
    RESTRICTION_EXTENSIONS,
    SEARCH_AUTOCOMPLETE_CODES,
)
from .valuesets import answers_from_value_set
from .values import (
    QUANTITY_TYPES,
    get_value_with_prefix,
    setup_value_and_unit,
    values_from_answers,
)

logger = logging.getLogger(__name__)


def get_data_type(q_item: Dict[str, Any]) -> DataType:
    """Form data type of a Questionnaire item; unknown types map to ST."""
    return ITEM_TYPE_TO_DATA_TYPE.get(q_item.get("type"), DEFAULT_DATA_TYPE)


def find_extension(extensions: Any, url: str) -> Optional[Dict[str, Any]]:
    """First extension with the given url, or None."""
    if not isinstance(extensions, list):
        return None
    for extension in extensions:
        if isinstance(extension, dict) and extension.get("url") == url:
            return extension
    return None


def find_extensions(extensions: Any, url: str) -> List[Dict[str, Any]]:
    if not isinstance(extensions, list):
        return []
    return [ext for ext in extensions if isinstance(ext, dict) and ext.get("url") == url]


def get_code(resource: Dict[str, Any]) -> Optional[Dict[str, Optional[str]]]:
    """
    Code and code system of a Questionnaire or item.

    Prefers the first `code` entry, then the first `identifier`.
    """
    codes = resource.get("code")
    if isinstance(codes, list) and codes:
        return {
            "code": codes[0].get("code"),
            "system": to_internal_code_system(codes[0].get("system")),
        }
    identifiers = resource.get("identifier")
    if isinstance(identifiers, list) and identifiers:
        return {
            "code": identifiers[0].get("value"),
            "system": to_internal_code_system(identifiers[0].get("system")),
        }
    return None


def create_link_id_item_map(questionnaire: Dict[str, Any]) -> Dict[str, Dict[str, Any]]:
    """Map every linkId of a Questionnaire (at any depth) to its item."""
    link_id_map: Dict[str, Dict[str, Any]] = {}

    def traverse(items):
        for item in items:
            link_id_map[item.get("linkId")] = item
            if item.get("item"):
                traverse(item["item"])

    traverse(questionnaire.get("item") or [])
    return link_id_map


def get_source_code_using_link_id(
    link_id_map: Dict[str, Dict[str, Any]], link_id: str
) -> Dict[str, Any]:
    """Data type and question code of the item a skip-logic condition refers to."""
    item = link_id_map[link_id]
    codes = item.get("code")
    return {
        "data_type": get_data_type(item),
        "question_code": codes[0].get("code") if codes else item.get("linkId"),
    }


def _int_extension_value(extension: Optional[Dict[str, Any]]) -> Optional[int]:
    if not extension:
        return None
    value = extension.get("valueInteger")
    if isinstance(value, bool) or not isinstance(value, int):
        logger.debug("Ignoring malformed cardinality extension %s", extension)
        return None
    return value


class QuestionnaireImporter:
    """
    Converts Questionnaire resources to form data.

    Usage:
        importer = QuestionnaireImporter()
        form = importer.convert(questionnaire_json)
    """

    def __init__(self, unit_converter: Optional[UnitConverter] = None):
        self.unit_converter = unit_converter

    def convert(self, questionnaire: Optional[Dict[str, Any]]) -> Optional[FormData]:
        """
        Convert a Questionnaire to a form.

        Args:
            questionnaire: Questionnaire resource as a dictionary

        Returns:
            FormData, or None when no Questionnaire was given
        """
        if not questionnaire:
            return None

        form = FormData(fhir_version=FHIR_VERSION)
        self._process_form_level_fields(form, questionnaire)
        contained = self._extract_contained_value_sets(questionnaire)
        form.items = [
            self.import_item(q_item, contained)
            for q_item in questionnaire.get("item") or []
        ]
        return form

    def import_item(
        self,
        q_item: Dict[str, Any],
        contained: Optional[Dict[str, List[AnswerOption]]] = None,
    ) -> FormItem:
        """Convert one Questionnaire item, and its children, to a form item."""
        contained = contained or {}
        item = FormItem(link_id=q_item.get("linkId"), data_type=get_data_type(q_item))
        item.question = q_item.get("text")
        item.prefix = q_item.get("prefix")

        self._process_code_and_link_id(item, q_item)
        self._process_cardinality(item, q_item)
        self._process_display_control(item, q_item)
        self._process_terminology_server(item, q_item)
        self._process_hidden(item, q_item)
        self._process_restrictions(item, q_item)
        self._process_answers(item, q_item, contained)
        self._process_units(item, q_item)
        self._process_initial_values(item, q_item)

        item.items = [
            self.import_item(child, contained) for child in q_item.get("item") or []
        ]
        return item

    # ------------------------------------------------------------------
    # Form level
    # ------------------------------------------------------------------

    def _process_form_level_fields(self, form: FormData, questionnaire: Dict[str, Any]) -> None:
        for field_name in FORM_LEVEL_FIELDS:
            if field_name in questionnaire:
                form.form_fields[field_name] = copy.deepcopy(questionnaire[field_name])
        form.name = questionnaire.get("title") or questionnaire.get("name")
        code = get_code(questionnaire)
        if code:
            form.code = code["code"]
            form.code_system = code["system"]

    def _extract_contained_value_sets(
        self, questionnaire: Dict[str, Any]
    ) -> Dict[str, List[AnswerOption]]:
        contained = {}
        for resource in questionnaire.get("contained") or []:
            if resource.get("resourceType") == "ValueSet" and resource.get("id"):
                answers = answers_from_value_set(resource)
                if answers:
                    contained[resource["id"]] = answers
        return contained

    # ------------------------------------------------------------------
    # Item level
    # ------------------------------------------------------------------

    def _process_code_and_link_id(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        if q_item.get("code"):
            item.code_list = copy.deepcopy(q_item["code"])
        code = get_code(q_item)
        if code:
            item.question_code = code["code"]
            item.question_code_system = code["system"]
        else:
            # linkId stands in for the code; it is not a real code system
            item.question_code = q_item.get("linkId")
            item.question_code_system = LINK_ID_CODE_SYSTEM
        item.link_id = q_item.get("linkId")

    def _process_cardinality(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        if q_item.get("required"):
            item.answer_cardinality.min = "1"
            item.question_cardinality.min = "1"

        if q_item.get("repeats"):
            if item.data_type in (DataType.CNE, DataType.CWE):
                item.answer_cardinality.max = UNBOUNDED
            elif item.data_type != DataType.TITLE:
                item.question_cardinality.max = UNBOUNDED

        extensions = q_item.get("extension")
        min_occurs = _int_extension_value(find_extension(extensions, EXT_MIN_OCCURS))
        if min_occurs is not None:
            item.question_cardinality.min = str(min_occurs)
        max_occurs = _int_extension_value(find_extension(extensions, EXT_MAX_OCCURS))
        if max_occurs is not None:
            item.question_cardinality.max = str(max_occurs)

    def _process_display_control(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        extension = find_extension(q_item.get("extension"), EXT_ITEM_CONTROL)
        if not extension:
            return
        try:
            code = extension["valueCodeableConcept"]["coding"][0]["code"]
        except (KeyError, IndexError, TypeError):
            logger.debug("Ignoring malformed itemControl on %s", item.link_id)
            return

        display_control = DisplayControl()
        if code in COMBO_BOX_CODES:
            if code in SEARCH_AUTOCOMPLETE_CODES:
                item.is_search_autocomplete = True
            display_control.answer_layout = ANSWER_LAYOUT_COMBO_BOX
        elif code in RADIO_CHECKBOX_CODES:
            display_control.answer_layout = ANSWER_LAYOUT_RADIO_CHECKBOX
        elif code in HORIZONTAL_TABLE_CODES:
            if item.data_type == DataType.SECTION:
                display_control.question_layout = QUESTION_LAYOUT_HORIZONTAL
        elif code in MATRIX_TABLE_CODES:
            if item.data_type == DataType.SECTION:
                display_control.question_layout = QUESTION_LAYOUT_MATRIX

        if not display_control.is_empty():
            item.display_control = display_control

    def _process_terminology_server(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        extension = find_extension(q_item.get("extension"), EXT_TERMINOLOGY_SERVER)
        if extension and extension.get("valueUrl"):
            item.terminology_server = extension["valueUrl"]

    def _process_hidden(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        extension = find_extension(q_item.get("extension"), EXT_HIDDEN)
        item.hidden = bool(extension and extension.get("valueBoolean") is True)

    def _process_restrictions(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        for extension in q_item.get("extension") or []:
            if not isinstance(extension, dict):
                continue
            name = RESTRICTION_EXTENSIONS.get(extension.get("url"))
            if name:
                value = get_value_with_prefix(extension, "value")
                if value is not None:
                    item.restrictions[name] = value.payload

    def _process_answers(
        self,
        item: FormItem,
        q_item: Dict[str, Any],
        contained: Dict[str, List[AnswerOption]],
    ) -> None:
        options = q_item.get("answerOption") or q_item.get("option")
        if options:
            item.answers = [self._answer_from_option(option) for option in options]

        value_set = q_item.get("answerValueSet")
        if value_set:
            if value_set.startswith("#"):
                answers = contained.get(value_set[1:])
                if answers:
                    item.answers = copy.deepcopy(answers)
                else:
                    logger.debug("Contained ValueSet %s not found", value_set)
            else:
                item.answer_value_set = value_set

    def _answer_from_option(self, option: Dict[str, Any]) -> AnswerOption:
        value = get_value_with_prefix(option, "value")
        answer = AnswerOption()
        extensions = list(option.get("extension") or [])
        if value is not None and value.kind == "Coding" and isinstance(value.payload, dict):
            coding = value.payload
            answer.code = coding.get("code")
            answer.text = coding.get("display")
            answer.code_system = to_internal_code_system(coding.get("system"))
            extensions.extend(coding.get("extension") or [])
        elif value is not None:
            answer.text = str(value.payload)

        score = (find_extension(extensions, EXT_ORDINAL_VALUE)
                 or find_extension(extensions, EXT_ARGONAUT_SCORE))
        if score and score.get("valueDecimal") is not None:
            answer.score = score["valueDecimal"]

        prefix = find_extension(extensions, EXT_OPTION_PREFIX)
        if prefix and prefix.get("valueString"):
            answer.label = prefix["valueString"]
        return answer

    def _process_units(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        if item.data_type not in QUANTITY_TYPES:
            return
        extensions = q_item.get("extension")
        units = []
        for extension in find_extensions(extensions, EXT_UNIT_OPTION):
            unit = self._unit_from_extension(extension)
            if unit:
                units.append(unit)

        default = self._unit_from_extension(find_extension(extensions, EXT_UNIT))
        if default:
            for unit in units:
                if unit.code == default.code and unit.system == default.system:
                    unit.default = True
                    break
            else:
                default.default = True
                units.insert(0, default)
        item.units = units

    def _unit_from_extension(self, extension: Optional[Dict[str, Any]]) -> Optional[Unit]:
        if not extension:
            return None
        coding = extension.get("valueCoding")
        if not isinstance(coding, dict):
            return None
        return Unit(
            name=coding.get("display") or coding.get("code"),
            code=coding.get("code"),
            system=coding.get("system"),
        )

    def _process_initial_values(self, item: FormItem, q_item: Dict[str, Any]) -> None:
        if item.is_section_or_title:
            return
        initial = q_item.get("initial")
        if isinstance(initial, list):
            values = values_from_answers(initial)
        else:
            # STU3 style initial[x] on the item itself
            value = get_value_with_prefix(
                {k: v for k, v in q_item.items() if k != "initial"}, "initial"
            )
            values = [value] if value is not None else []
        if values:
            setup_value_and_unit(item, values, self.unit_converter, as_default=True)
