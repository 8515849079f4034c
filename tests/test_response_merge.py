"""
QuestionnaireResponse merge tests

Covers:
1. Response structure summary (index / total per linkId)
2. Single answers, repeating questions and repeating answers
3. Repeating sections
4. Unknown items, nested answer items and unit handling
5. Idempotence
"""
import logging

import pytest
from unittest.mock import Mock

from sdc_importer.fhir.codes import ConversionResult
from sdc_importer.fhir.constants import UCUM_URI
from sdc_importer.fhir.importer import QuestionnaireImporter
from sdc_importer.fhir.response_merge import (
    QuestionnaireResponseMerger,
    add_repeating_items,
    build_qr_structure,
    find_item_by_link_id_and_index,
    merge_questionnaire_response,
)
from sdc_importer.form.models import AnswerOption, Cardinality, DataType, FormItem, Unit


# ============================================================================
# Sample Data for Testing
# ============================================================================

QUESTIONNAIRE = {
    "resourceType": "Questionnaire",
    "status": "active",
    "item": [
        {"linkId": "/name", "type": "string", "text": "Name"},
        {"linkId": "/phone", "type": "string", "text": "Phone", "repeats": True},
        {
            "linkId": "/allergies",
            "type": "choice",
            "repeats": True,
            "answerOption": [
                {"valueCoding": {"code": "a1", "display": "Peanuts"}},
                {"valueCoding": {"code": "a2", "display": "Dust"}},
                {"valueCoding": {"code": "a3", "display": "Pollen"}},
            ],
        },
        {
            "linkId": "/weight",
            "type": "decimal",
            "extension": [{
                "url": "http://hl7.org/fhir/StructureDefinition/questionnaire-unitOption",
                "valueCoding": {"system": UCUM_URI, "code": "kg"},
            }],
        },
        {
            "linkId": "/meds",
            "type": "group",
            "repeats": True,
            "item": [
                {"linkId": "/meds/name", "type": "string"},
                {"linkId": "/meds/dose", "type": "integer"},
            ],
        },
        {
            "linkId": "/smoker",
            "type": "boolean",
            "item": [{"linkId": "/smoker/packs", "type": "integer"}],
        },
    ],
}


def string_answers(*values):
    return [{"valueString": value} for value in values]


def response(*items):
    return {"resourceType": "QuestionnaireResponse", "status": "completed", "item": list(items)}


@pytest.fixture
def form():
    return QuestionnaireImporter().convert(QUESTIONNAIRE)


def link_ids(items):
    return [item.link_id for item in items]


# ============================================================================
# Response structure
# ============================================================================

class TestResponseStructure:
    """Test the structural summary of a QuestionnaireResponse."""

    def test_occurrences_are_grouped(self):
        qr = response(
            {"linkId": "a"},
            {"linkId": "b"},
            {"linkId": "a"},
        )
        structure = build_qr_structure(qr)
        summary = [(info.link_id, info.index, info.total) for info in structure.children]
        assert summary == [("a", 0, 2), ("a", 1, 2), ("b", 0, 1)]

    def test_answer_items_become_children(self):
        qr = response({
            "linkId": "/smoker",
            "answer": [{"valueBoolean": True, "item": [{"linkId": "/smoker/packs"}]}],
        })
        smoker = build_qr_structure(qr).children[0]
        assert link_ids(smoker.children) == ["/smoker/packs"]


# ============================================================================
# Merging answers
# ============================================================================

class TestMergeAnswers:
    """Test assigning response answers to form items."""

    def test_single_answer(self, form):
        merge_questionnaire_response(form, response(
            {"linkId": "/name", "answer": string_answers("Ada")}
        ))
        assert form.find_items("/name")[0].value == "Ada"

    def test_repeating_question_with_many_answers(self, form):
        """One response item with three answers becomes three form items."""
        merge_questionnaire_response(form, response(
            {"linkId": "/phone", "answer": string_answers("111", "222", "333")}
        ))
        phones = form.find_items("/phone")
        assert [item.value for item in phones] == ["111", "222", "333"]
        assert link_ids(form.items) == [
            "/name", "/phone", "/phone", "/phone", "/allergies", "/weight", "/meds", "/smoker"
        ]

    def test_repeating_question_with_sibling_items(self, form):
        merge_questionnaire_response(form, response(
            {"linkId": "/phone", "answer": string_answers("111")},
            {"linkId": "/phone", "answer": string_answers("222")},
            {"linkId": "/phone", "answer": string_answers("333")},
        ))
        assert [item.value for item in form.find_items("/phone")] == ["111", "222", "333"]

    def test_repeating_answers_stay_on_one_item(self, form):
        answers = [{"valueCoding": {"code": code}} for code in ("a1", "a2", "a3")]
        merge_questionnaire_response(form, response({"linkId": "/allergies", "answer": answers}))

        allergies = form.find_items("/allergies")
        assert len(allergies) == 1
        assert [a.text for a in allergies[0].value] == ["Peanuts", "Dust", "Pollen"]

    def test_repeating_answers_across_occurrences(self, form):
        merge_questionnaire_response(form, response(
            {"linkId": "/allergies", "answer": [{"valueCoding": {"code": "a1"}}]},
            {"linkId": "/allergies", "answer": [{"valueCoding": {"code": "a3"}}]},
        ))
        allergies = form.find_items("/allergies")
        assert len(allergies) == 1
        assert [a.code for a in allergies[0].value] == ["a1", "a3"]

    def test_collapsed_occurrences_log_dropped_children(self, caplog):
        """Child items of later occurrences of a repeating-answer question are logged when dropped."""
        form_item = FormItem(
            link_id="/symptom",
            data_type=DataType.CNE,
            answer_cardinality=Cardinality(max="*"),
            answers=[AnswerOption(code="s1", text="Cough"), AnswerOption(code="s2", text="Fever")],
            items=[FormItem(link_id="/symptom/note", data_type=DataType.ST)],
        )
        form = QuestionnaireImporter().convert({"resourceType": "Questionnaire"})
        form.items = [form_item]

        with caplog.at_level(logging.DEBUG, logger="sdc_importer.fhir.response_merge"):
            merge_questionnaire_response(form, response(
                {"linkId": "/symptom", "answer": [{"valueCoding": {"code": "s1"}, "item": [
                    {"linkId": "/symptom/note", "answer": string_answers("one")},
                ]}]},
                {"linkId": "/symptom", "answer": [{"valueCoding": {"code": "s2"}, "item": [
                    {"linkId": "/symptom/note", "answer": string_answers("two")},
                ]}]},
            ))

        assert [a.code for a in form_item.value] == ["s1", "s2"]
        assert form_item.items[0].value == "one"
        assert "Dropping 1 child item(s) of /symptom occurrence 1" in caplog.text

    def test_unknown_link_id_is_dropped(self, form):
        before = link_ids(form.items)
        merge_questionnaire_response(form, response(
            {"linkId": "/unknown", "answer": string_answers("x")},
            {"linkId": "/name", "answer": string_answers("Ada")},
        ))
        assert link_ids(form.items) == before
        assert form.find_items("/unknown") == []
        assert form.find_items("/name")[0].value == "Ada"

    def test_nested_answer_items(self, form):
        merge_questionnaire_response(form, response({
            "linkId": "/smoker",
            "answer": [{"valueBoolean": True, "item": [
                {"linkId": "/smoker/packs", "answer": [{"valueInteger": 2}]},
            ]}],
        }))
        smoker = form.find_items("/smoker")[0]
        assert smoker.value is True
        assert smoker.items[0].value == 2


# ============================================================================
# Repeating sections
# ============================================================================

class TestRepeatingSections:
    """Test cloning repeating groups."""

    def test_section_is_cloned_per_occurrence(self, form):
        merge_questionnaire_response(form, response(
            {"linkId": "/meds", "item": [
                {"linkId": "/meds/name", "answer": string_answers("Aspirin")},
                {"linkId": "/meds/dose", "answer": [{"valueInteger": 100}]},
            ]},
            {"linkId": "/meds", "item": [
                {"linkId": "/meds/name", "answer": string_answers("Metformin")},
            ]},
        ))
        meds = form.find_items("/meds")
        assert len(meds) == 2
        assert meds[0].data_type == DataType.SECTION
        assert [child.value for child in meds[0].items] == ["Aspirin", 100]
        assert [child.value for child in meds[1].items] == ["Metformin", None]

    def test_clones_start_empty(self):
        template = FormItem(link_id="/g", data_type=DataType.SECTION, items=[
            FormItem(link_id="/g/x", value="filled"),
        ])
        items = [template]
        add_repeating_items(items, "/g", 3)

        assert link_ids(items) == ["/g", "/g", "/g"]
        assert items[0].items[0].value == "filled"
        assert items[2].items[0].value is None
        assert items[1] is not items[2]

    def test_clones_drop_selected_unit(self):
        kg = Unit(name="kg", code="kg", system=UCUM_URI)
        template = FormItem(link_id="/g", data_type=DataType.SECTION, items=[
            FormItem(link_id="/g/weight", data_type=DataType.REAL, units=[kg], unit=kg, value=70),
        ])
        items = [template]
        add_repeating_items(items, "/g", 2)

        clone = items[1].items[0]
        assert clone.value is None
        assert clone.unit is None
        assert clone.units == [kg]
        assert items[0].items[0].unit == kg

    def test_find_by_index(self):
        items = [FormItem(link_id="a"), FormItem(link_id="b", value=1), FormItem(link_id="b", value=2)]
        assert find_item_by_link_id_and_index(items, "b", 1).value == 2
        assert find_item_by_link_id_and_index(items, "b", 2) is None


# ============================================================================
# Units
# ============================================================================

class TestMergeUnits:
    """Test Quantity answers during a merge."""

    def test_matching_unit(self, form):
        merge_questionnaire_response(form, response({
            "linkId": "/weight",
            "answer": [{"valueQuantity": {"value": 70.5, "system": UCUM_URI, "code": "kg"}}],
        }))
        weight = form.find_items("/weight")[0]
        assert weight.value == 70.5
        assert weight.unit.code == "kg"

    def test_converted_unit(self, form):
        converter = Mock()
        converter.convert.return_value = ConversionResult(status="succeeded", value=68.0388555)
        merger = QuestionnaireResponseMerger(unit_converter=converter)

        merger.merge(form, response({
            "linkId": "/weight",
            "answer": [{"valueQuantity": {"value": 150.5, "system": UCUM_URI, "code": "[lb_av]"}}],
        }))

        weight = form.find_items("/weight")[0]
        # rounded to the four significant digits of 150.5
        assert weight.value == 68.04
        assert weight.unit.code == "kg"

    def test_unit_mismatch_leaves_value_empty(self, form):
        merge_questionnaire_response(form, response({
            "linkId": "/weight",
            "answer": [{"valueQuantity": {"value": 1, "system": UCUM_URI, "code": "L"}}],
        }))
        assert form.find_items("/weight")[0].value is None


# ============================================================================
# Idempotence
# ============================================================================

class TestIdempotence:
    """Merging the same response twice gives the same form."""

    def test_merge_twice(self, form):
        qr = response(
            {"linkId": "/name", "answer": string_answers("Ada")},
            {"linkId": "/phone", "answer": string_answers("111", "222")},
            {"linkId": "/meds", "item": [{"linkId": "/meds/name", "answer": string_answers("A")}]},
            {"linkId": "/meds", "item": [{"linkId": "/meds/name", "answer": string_answers("B")}]},
        )
        merge_questionnaire_response(form, qr)
        once = form.to_dict()
        merge_questionnaire_response(form, qr)
        assert form.to_dict() == once
