"""
QuestionnaireResponse Merge

Merges the answers of a QuestionnaireResponse into an imported form.

The response tree is first summarised into `QRItemInfo` nodes that record,
for every linkId on a level, its occurrences in response order. The merge
then walks both trees one level at a time:

1. Plan the occurrences of each linkId against the form item it maps to.
   A repeating question gets one occurrence per answer; a question whose
   answers repeat gets a single occurrence holding every answer; sections
   keep one occurrence per response item.
2. Add copies of repeating form items until the form has as many items as
   planned occurrences.
3. Assign each occurrence's answers to the form item with the same linkId
   and position, then recurse into its children.

Response items with no counterpart in the form are dropped.
"""
import copy
import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Tuple

from sdc_importer.form.models import FormData, FormItem
from .codes import UnitConverter
from .values import setup_value_and_unit, values_from_answers

logger = logging.getLogger(__name__)


@dataclass
class QRItemInfo:
    """One occurrence of a linkId among its siblings in a response."""
    item: Dict[str, Any]
    link_id: Optional[str] = None
    index: int = 0
    total: int = 1
    children: List["QRItemInfo"] = field(default_factory=list)

    @property
    def answers(self) -> List[Dict[str, Any]]:
        return self.item.get("answer") or []

    def with_answers(self, answers: List[Dict[str, Any]]) -> "QRItemInfo":
        return replace(self, item=dict(self.item, answer=answers))


def _child_items(qr_item: Dict[str, Any]) -> List[Dict[str, Any]]:
    children = list(qr_item.get("item") or [])
    # items nested under answers belong to the same question
    for answer in qr_item.get("answer") or []:
        children.extend(answer.get("item") or [])
    return children


def _build_level(qr_items: List[Dict[str, Any]]) -> List[QRItemInfo]:
    occurrences: Dict[str, List[Dict[str, Any]]] = {}
    for qr_item in qr_items:
        occurrences.setdefault(qr_item.get("linkId"), []).append(qr_item)

    infos = []
    for link_id, items in occurrences.items():
        for index, qr_item in enumerate(items):
            infos.append(QRItemInfo(
                item=qr_item,
                link_id=link_id,
                index=index,
                total=len(items),
                children=_build_level(_child_items(qr_item)),
            ))
    return infos


def build_qr_structure(qr: Dict[str, Any]) -> QRItemInfo:
    """
    Structural summary of a QuestionnaireResponse (or of one of its items).

    Occurrences of the same linkId are grouped together, in the order the
    linkId first appears, and annotated with their index and total count.
    """
    return QRItemInfo(
        item=qr,
        link_id=qr.get("linkId"),
        children=_build_level(_child_items(qr)),
    )


def find_item_by_link_id(items: List[FormItem], link_id: str) -> Optional[FormItem]:
    for item in items:
        if item.link_id == link_id:
            return item
    return None


def find_item_by_link_id_and_index(
    items: List[FormItem], link_id: str, index: int
) -> Optional[FormItem]:
    """The `index`-th item among siblings with the given linkId."""
    position = 0
    for item in items:
        if item.link_id == link_id:
            if position == index:
                return item
            position += 1
    return None


def _fresh_copy(item: FormItem) -> FormItem:
    """Copy of a form item without values or previously added repeats."""
    clone = copy.deepcopy(item)
    clone.clear_values()
    _drop_repeats(clone)
    return clone


def _drop_repeats(item: FormItem) -> None:
    seen = set()
    kept = []
    for child in item.items:
        if child.link_id in seen and child.question_repeats:
            continue
        seen.add(child.link_id)
        _drop_repeats(child)
        kept.append(child)
    item.items = kept


def add_repeating_items(items: List[FormItem], link_id: str, total: int) -> None:
    """
    Make sure `items` holds `total` siblings with the given linkId.

    Copies of the first such item are inserted after the last existing one.
    """
    positions = [i for i, item in enumerate(items) if item.link_id == link_id]
    if not positions or len(positions) >= total:
        return
    template = items[positions[0]]
    insert_at = positions[-1] + 1
    for offset in range(total - len(positions)):
        items.insert(insert_at + offset, _fresh_copy(template))


class QuestionnaireResponseMerger:
    """
    Merges QuestionnaireResponse data into form data.

    Usage:
        merger = QuestionnaireResponseMerger()
        form = merger.merge(form, questionnaire_response)
    """

    def __init__(self, unit_converter: Optional[UnitConverter] = None):
        self.unit_converter = unit_converter

    def merge(self, form: FormData, qr: Dict[str, Any]) -> FormData:
        """
        Merge a QuestionnaireResponse into a form, in place.

        Args:
            form: Form imported from the matching Questionnaire
            qr: QuestionnaireResponse resource as a dictionary

        Returns:
            The same form, with values assigned and repeats added
        """
        structure = build_qr_structure(qr)
        self._merge_level(structure.children, form.items)
        return form

    def _merge_level(self, infos: List[QRItemInfo], items: List[FormItem]) -> None:
        planned, repeats = self._plan(infos, items)
        for link_id, total in repeats.items():
            add_repeating_items(items, link_id, total)

        for info in planned:
            item = find_item_by_link_id_and_index(items, info.link_id, info.index)
            if item is None:
                logger.debug("No form item for linkId %s (occurrence %d)",
                             info.link_id, info.index)
                continue

            if not item.is_section_or_title and info.answers:
                setup_value_and_unit(item, values_from_answers(info.answers),
                                     self.unit_converter)

            if info.children:
                self._merge_level(info.children, item.items)

    def _plan(
        self, infos: List[QRItemInfo], items: List[FormItem]
    ) -> Tuple[List[QRItemInfo], Dict[str, int]]:
        """
        Aligned occurrence list for one level, plus the number of items each
        repeating question or section needs.

        Built before the form is touched, so expanding the form never happens
        while iterating over the occurrences.
        """
        grouped: Dict[str, List[QRItemInfo]] = {}
        for info in infos:
            grouped.setdefault(info.link_id, []).append(info)

        planned = []
        repeats = {}
        for link_id, occurrences in grouped.items():
            def_item = find_item_by_link_id(items, link_id)
            if def_item is None:
                logger.debug("Response item %s is not in the form", link_id)
                continue
            aligned = self._align(def_item, occurrences)
            if def_item.question_repeats and len(aligned) > 1:
                repeats[link_id] = len(aligned)
            planned.extend(
                replace(info, index=index, total=len(aligned))
                for index, info in enumerate(aligned)
            )
        return planned, repeats

    def _align(self, def_item: FormItem, occurrences: List[QRItemInfo]) -> List[QRItemInfo]:
        if def_item.is_section_or_title:
            return occurrences

        if def_item.question_repeats:
            # one form item per answer
            aligned = []
            for info in occurrences:
                if len(info.answers) > 1 and not info.children:
                    aligned.extend(info.with_answers([answer]) for answer in info.answers)
                else:
                    aligned.append(info)
            return aligned

        if def_item.answer_repeats and len(occurrences) > 1:
            # all answers belong to a single form item
            answers = [answer for info in occurrences for answer in info.answers]
            for info in occurrences[1:]:
                if info.children:
                    logger.debug("Dropping %d child item(s) of %s occurrence %d",
                                 len(info.children), info.link_id, info.index)
            return [occurrences[0].with_answers(answers)]

        return occurrences


def merge_questionnaire_response(
    form: FormData,
    qr: Dict[str, Any],
    unit_converter: Optional[UnitConverter] = None,
) -> FormData:
    """Merge a QuestionnaireResponse into a form (see `QuestionnaireResponseMerger`)."""
    return QuestionnaireResponseMerger(unit_converter).merge(form, qr)
