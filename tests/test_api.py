"""
API endpoint tests

Tests the health check, Questionnaire import and QuestionnaireResponse merge
endpoints with an import service whose value set expander is faked.
"""
import pytest
from fastapi.testclient import TestClient

from sdc_importer.form.models import AnswerOption
from sdc_importer.main import app, get_service
from sdc_importer.service import FormImportService
from sdc_importer.terminology.base import ValueSetExpander


class StaticExpander(ValueSetExpander):
    """Expands one known value set; everything else is missing."""

    async def expand(self, value_set, terminology_server=None):
        if value_set == "http://example.org/vs/colors":
            return [AnswerOption(code="R", text="Red"), AnswerOption(code="G", text="Green")]
        raise RuntimeError(f"ValueSet {value_set} not found")


test_service = FormImportService(expander=StaticExpander())


def override_get_service():
    """Override the import service for testing"""
    return test_service


app.dependency_overrides[get_service] = override_get_service
client = TestClient(app)


QUESTIONNAIRE = {
    "resourceType": "Questionnaire",
    "status": "active",
    "title": "Intake",
    "item": [
        {"linkId": "/name", "type": "string", "text": "Name"},
        {"linkId": "/color", "type": "choice", "answerValueSet": "http://example.org/vs/colors"},
        {"linkId": "/size", "type": "choice", "answerValueSet": "http://example.org/vs/sizes"},
        {"linkId": "/phone", "type": "string", "repeats": True},
    ],
}

RESPONSE = {
    "resourceType": "QuestionnaireResponse",
    "status": "completed",
    "item": [
        {"linkId": "/name", "answer": [{"valueString": "Ada"}]},
        {"linkId": "/color", "answer": [{"valueCoding": {"code": "G"}}]},
        {"linkId": "/phone", "answer": [{"valueString": "111"}, {"valueString": "222"}]},
    ],
}


@pytest.fixture(autouse=True)
def clear_cache():
    """Start each test with an empty answer-set cache"""
    test_service.cache.clear()
    yield


def items_by_link_id(form, link_id):
    return [item for item in form["items"] if item["link_id"] == link_id]


# ============================================================================
# Health
# ============================================================================

def test_health_check():
    """Test health check endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


# ============================================================================
# Import
# ============================================================================

class TestImportEndpoint:
    """Test POST /questionnaire/import"""

    def test_import_without_answer_sets(self):
        response = client.post("/questionnaire/import", json={"questionnaire": QUESTIONNAIRE})
        assert response.status_code == 200

        data = response.json()
        assert data["form"]["name"] == "Intake"
        assert data["form"]["fhir_version"] == "R4"
        assert [item["link_id"] for item in data["form"]["items"]] == [
            "/name", "/color", "/size", "/phone"
        ]
        assert items_by_link_id(data["form"], "/color")[0]["answers"] == []
        assert data["answer_set_errors"] == []

    def test_import_with_answer_sets(self):
        response = client.post("/questionnaire/import", json={
            "questionnaire": QUESTIONNAIRE,
            "load_answer_sets": True,
        })
        assert response.status_code == 200

        data = response.json()
        color = items_by_link_id(data["form"], "/color")[0]
        assert [answer["code"] for answer in color["answers"]] == ["R", "G"]
        assert len(data["answer_set_errors"]) == 1
        assert "http://example.org/vs/sizes" in data["answer_set_errors"][0]

    def test_import_and_merge(self):
        response = client.post("/questionnaire/import", json={
            "questionnaire": QUESTIONNAIRE,
            "response": RESPONSE,
            "load_answer_sets": True,
        })
        assert response.status_code == 200

        form = response.json()["form"]
        assert items_by_link_id(form, "/name")[0]["value"] == "Ada"
        assert items_by_link_id(form, "/color")[0]["value"]["text"] == "Green"
        assert [item["value"] for item in items_by_link_id(form, "/phone")] == ["111", "222"]

    def test_import_rejects_other_resources(self):
        response = client.post("/questionnaire/import", json={
            "questionnaire": {"resourceType": "Patient"},
        })
        assert response.status_code == 400
        assert "Questionnaire" in response.json()["detail"]

    def test_import_missing_body(self):
        response = client.post("/questionnaire/import", json={})
        assert response.status_code == 422


# ============================================================================
# Merge
# ============================================================================

class TestMergeEndpoint:
    """Test POST /questionnaire-response/merge"""

    def test_merge(self):
        response = client.post("/questionnaire-response/merge", json={
            "questionnaire": QUESTIONNAIRE,
            "response": RESPONSE,
        })
        assert response.status_code == 200

        form = response.json()["form"]
        assert items_by_link_id(form, "/name")[0]["value"] == "Ada"
        assert len(items_by_link_id(form, "/phone")) == 2
        # no answer list was loaded, so the coded answer has nothing to match
        assert items_by_link_id(form, "/color")[0]["value"] is None

    def test_merge_requires_questionnaire(self):
        response = client.post("/questionnaire-response/merge", json={
            "questionnaire": {"resourceType": "QuestionnaireResponse"},
            "response": RESPONSE,
        })
        assert response.status_code == 400
