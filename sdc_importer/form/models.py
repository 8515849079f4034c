"""
Form-model tree driven by the interactive form.

A `FormData` owns a tree of `FormItem` nodes. The tree is created once per
Questionnaire import and then mutated in place: the response merge engine
inserts repeated items and assigns values, the answer-set loader attaches
option lists. Children do not keep a reference to their parent; code that
needs ancestor context (terminology server inheritance) receives it from
`iter_items()`.
"""
from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class DataType(str, Enum):
    """Form-side data types (distinct from Questionnaire item types)"""
    ST = "ST"
    SECTION = "SECTION"
    CNE = "CNE"
    CWE = "CWE"
    INT = "INT"
    REAL = "REAL"
    TX = "TX"
    BL = "BL"
    DT = "DT"
    DTM = "DTM"
    TM = "TM"
    TITLE = "TITLE"
    URL = "URL"
    QTY = "QTY"


UNBOUNDED = "*"


@dataclass
class AnswerOption:
    """One entry of a coded question's answer list."""
    code: Optional[str] = None
    text: Optional[str] = None
    code_system: Optional[str] = None
    score: Optional[float] = None
    label: Optional[str] = None


@dataclass
class Unit:
    """A unit a quantity-valued question accepts."""
    name: Optional[str] = None
    code: Optional[str] = None
    system: Optional[str] = None
    default: bool = False


@dataclass
class Cardinality:
    min: str = "0"
    max: str = "1"

    @property
    def is_unbounded(self) -> bool:
        return self.max == UNBOUNDED

    @property
    def repeats(self) -> bool:
        """True when more than one occurrence is allowed."""
        if self.is_unbounded:
            return True
        try:
            return int(self.max) > 1
        except (TypeError, ValueError):
            return False


@dataclass
class DisplayControl:
    answer_layout: Optional[str] = None
    question_layout: Optional[str] = None

    def is_empty(self) -> bool:
        return self.answer_layout is None and self.question_layout is None


@dataclass
class FormItem:
    """
    A question, section or title of the form.

    `value` and `default_answer` hold a list when the answer cardinality is
    unbounded and a single value (or None) otherwise.
    """
    link_id: str
    data_type: DataType = DataType.ST
    question: Optional[str] = None
    prefix: Optional[str] = None
    question_code: Optional[str] = None
    question_code_system: Optional[str] = None
    code_list: List[Dict[str, Any]] = field(default_factory=list)
    units: List[Unit] = field(default_factory=list)
    unit: Optional[Unit] = None
    answers: List[AnswerOption] = field(default_factory=list)
    answer_cardinality: Cardinality = field(default_factory=Cardinality)
    question_cardinality: Cardinality = field(default_factory=Cardinality)
    value: Any = None
    default_answer: Any = None
    display_control: Optional[DisplayControl] = None
    terminology_server: Optional[str] = None
    answer_value_set: Optional[str] = None
    answer_value_set_key: Optional[str] = None
    is_search_autocomplete: bool = False
    hidden: bool = False
    restrictions: Dict[str, Any] = field(default_factory=dict)
    items: List["FormItem"] = field(default_factory=list)

    @property
    def is_section_or_title(self) -> bool:
        return self.data_type in (DataType.SECTION, DataType.TITLE)

    @property
    def question_repeats(self) -> bool:
        """The question itself may occur several times as siblings."""
        return self.question_cardinality.repeats

    @property
    def answer_repeats(self) -> bool:
        """A single occurrence of the question may hold several answers."""
        return self.answer_cardinality.is_unbounded

    def clear_values(self) -> None:
        """Reset values and selected units on this item and all of its descendants."""
        self.value = None
        self.unit = None
        for child in self.items:
            child.clear_values()

    def iter_items(
        self, ancestors: Tuple["FormItem", ...] = ()
    ) -> Iterator[Tuple["FormItem", Tuple["FormItem", ...]]]:
        """Depth-first walk yielding (item, ancestors) pairs, self included."""
        yield self, ancestors
        for child in self.items:
            yield from child.iter_items(ancestors + (self,))


@dataclass
class FormData:
    """Root of an imported form."""
    name: Optional[str] = None
    code: Optional[str] = None
    code_system: Optional[str] = None
    fhir_version: Optional[str] = None
    form_fields: Dict[str, Any] = field(default_factory=dict)
    items: List[FormItem] = field(default_factory=list)

    def iter_items(self) -> Iterator[Tuple[FormItem, Tuple[FormItem, ...]]]:
        for item in self.items:
            yield from item.iter_items()

    def find_items(self, link_id: str) -> List[FormItem]:
        """All items in the tree carrying the given linkId, in tree order."""
        return [item for item, _ in self.iter_items() if item.link_id == link_id]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
