"""
FHIR SDC constants shared by the importer, value importer and merge engine.

Extension URLs, code system URIs and the fixed mapping tables between the
Questionnaire vocabulary and the form-model vocabulary.
"""
from sdc_importer.form.models import DataType


# FHIR extension urls
EXT_MIN_OCCURS = "http://hl7.org/fhir/StructureDefinition/questionnaire-minOccurs"
EXT_MAX_OCCURS = "http://hl7.org/fhir/StructureDefinition/questionnaire-maxOccurs"
EXT_ITEM_CONTROL = "http://hl7.org/fhir/StructureDefinition/questionnaire-itemControl"
EXT_UNIT = "http://hl7.org/fhir/StructureDefinition/questionnaire-unit"
EXT_UNIT_OPTION = "http://hl7.org/fhir/StructureDefinition/questionnaire-unitOption"
EXT_OPTION_PREFIX = "http://hl7.org/fhir/StructureDefinition/questionnaire-optionPrefix"
EXT_HIDDEN = "http://hl7.org/fhir/StructureDefinition/questionnaire-hidden"
EXT_TERMINOLOGY_SERVER = "http://hl7.org/fhir/StructureDefinition/terminology-server"
EXT_ORDINAL_VALUE = "http://hl7.org/fhir/StructureDefinition/ordinalValue"
EXT_VALUESET_ORDINAL_VALUE = "http://hl7.org/fhir/StructureDefinition/valueset-ordinalValue"
EXT_ARGONAUT_SCORE = "http://fhir.org/guides/argonaut-questionnaire/StructureDefinition/extension-score"

# Restriction extension url -> form restriction name
RESTRICTION_EXTENSIONS = {
    "http://hl7.org/fhir/StructureDefinition/minValue": "minInclusive",
    "http://hl7.org/fhir/StructureDefinition/maxValue": "maxInclusive",
    "http://hl7.org/fhir/StructureDefinition/minLength": "minLength",
    "http://hl7.org/fhir/StructureDefinition/regex": "pattern",
}

# Code systems
LOINC_URI = "http://loinc.org"
LOINC = "LOINC"
UCUM_URI = "http://unitsofmeasure.org"
LINK_ID_CODE_SYSTEM = "LinkId"

FHIR_VERSION = "R4"

# Questionnaire item type -> form data type
ITEM_TYPE_TO_DATA_TYPE = {
    "string": DataType.ST,
    "group": DataType.SECTION,
    "choice": DataType.CNE,
    "open-choice": DataType.CWE,
    "integer": DataType.INT,
    "decimal": DataType.REAL,
    "text": DataType.TX,
    "boolean": DataType.BL,
    "date": DataType.DT,
    "dateTime": DataType.DTM,
    "time": DataType.TM,
    "display": DataType.TITLE,
    "url": DataType.URL,
    "quantity": DataType.QTY,
}

DEFAULT_DATA_TYPE = DataType.ST

# Form data type -> FHIR value[x] suffix
DATA_TYPE_TO_VALUE_FIELD = {
    DataType.ST: "String",
    DataType.TX: "String",
    DataType.CNE: "Coding",
    DataType.CWE: "Coding",
    DataType.INT: "Integer",
    DataType.REAL: "Decimal",
    DataType.BL: "Boolean",
    DataType.DT: "Date",
    DataType.DTM: "DateTime",
    DataType.TM: "Time",
    DataType.URL: "Uri",
    DataType.QTY: "Quantity",
}

# itemControl codes, including the capitalised codes of older exports
COMBO_BOX_CODES = {"autocomplete", "drop-down", "Lookup", "Combo-box"}
SEARCH_AUTOCOMPLETE_CODES = {"autocomplete", "Lookup", "Combo-box"}
RADIO_CHECKBOX_CODES = {"check-box", "radio-button", "Checkbox", "Radio"}
HORIZONTAL_TABLE_CODES = {"gtable", "Table"}
MATRIX_TABLE_CODES = {"table", "Matrix"}

ANSWER_LAYOUT_COMBO_BOX = "COMBO_BOX"
ANSWER_LAYOUT_RADIO_CHECKBOX = "RADIO_CHECKBOX"
QUESTION_LAYOUT_HORIZONTAL = "horizontal"
QUESTION_LAYOUT_MATRIX = "matrix"

# Questionnaire fields copied verbatim onto the form
FORM_LEVEL_FIELDS = [
    # Resource
    "id",
    "meta",
    "implicitRules",
    "language",
    # DomainResource
    "text",
    "contained",
    "extension",
    "modifierExtension",
    # Questionnaire
    "date",
    "version",
    "title",
    "name",
    "identifier",
    "code",
    "subjectType",
    "derivedFrom",
    "status",
    "experimental",
    "publisher",
    "contact",
    "description",
    "useContext",
    "jurisdiction",
    "purpose",
    "copyright",
    "approvalDate",
    "reviewDate",
    "effectivePeriod",
    "url",
]
