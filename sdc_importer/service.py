"""
Form Import Service

Main service for turning SDC resources into a ready-to-render form.

Orchestrates:
1. Questionnaire import (static fields)
2. Answer value set prefetch (optional)
3. QuestionnaireResponse merge (optional)
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from sdc_importer.fhir.codes import UnitConverter
from sdc_importer.fhir.importer import QuestionnaireImporter
from sdc_importer.fhir.response_merge import QuestionnaireResponseMerger
from sdc_importer.form.models import FormData, FormItem
from sdc_importer.terminology.answer_sets import AnswerSetCache, AnswerSetLoader, AnswerSetResult
from sdc_importer.terminology.base import ValueSetExpander
from sdc_importer.terminology.expander import FHIRValueSetExpander

logger = logging.getLogger(__name__)


@dataclass
class ImportResult:
    """Result of a form import."""
    success: bool
    form: Optional[FormData] = None
    answer_sets: List[AnswerSetResult] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def answer_set_errors(self) -> List[str]:
        return [result.error for result in self.answer_sets if not result.success]


class FormImportService:
    """
    Imports Questionnaires and merges QuestionnaireResponses.

    The answer-set cache belongs to the service, so every form imported
    through the same service shares resolved value sets.

    Usage:
        service = FormImportService()
        result = await service.import_form(questionnaire, response)

        if result.success:
            form = result.form
    """

    def __init__(
        self,
        expander: Optional[ValueSetExpander] = None,
        unit_converter: Optional[UnitConverter] = None,
        cache: Optional[AnswerSetCache] = None,
        on_update: Optional[Callable[[FormItem], None]] = None,
    ):
        self.importer = QuestionnaireImporter(unit_converter)
        self.merger = QuestionnaireResponseMerger(unit_converter)
        self.expander = expander or FHIRValueSetExpander()
        self.cache = cache if cache is not None else AnswerSetCache()
        self.loader = AnswerSetLoader(self.expander, self.cache, on_update)

    def convert(self, questionnaire: Dict[str, Any]) -> Optional[FormData]:
        """Import a Questionnaire without resolving external answer lists."""
        return self.importer.convert(questionnaire)

    def merge(self, form: FormData, response: Dict[str, Any]) -> FormData:
        """Merge a QuestionnaireResponse into an imported form."""
        return self.merger.merge(form, response)

    async def import_form(
        self,
        questionnaire: Dict[str, Any],
        response: Optional[Dict[str, Any]] = None,
        load_answer_sets: bool = True,
    ) -> ImportResult:
        """
        Import a Questionnaire, resolve its answer lists and merge a response.

        Answer lists are loaded before the merge so coded answers can be
        matched against them. Value set failures are reported on the result
        and do not fail the import.

        Args:
            questionnaire: Questionnaire resource
            response: Optional QuestionnaireResponse to merge
            load_answer_sets: Resolve answerValueSet references

        Returns:
            ImportResult with the form and the answer set outcomes
        """
        if not questionnaire or questionnaire.get("resourceType") != "Questionnaire":
            return ImportResult(success=False, error="A Questionnaire resource is required")

        form = self.convert(questionnaire)
        answer_sets = []
        if load_answer_sets:
            answer_sets = await self.loader.prefetch(form)
        if response:
            self.merge(form, response)

        result = ImportResult(success=True, form=form, answer_sets=answer_sets)
        if result.answer_set_errors:
            logger.warning("%d answer value set(s) could not be loaded",
                           len(result.answer_set_errors))
        return result

    async def close(self) -> None:
        await self.expander.close()
