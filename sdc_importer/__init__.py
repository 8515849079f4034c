"""
SDC Form Importer

Imports FHIR SDC Questionnaires into an interactive form model, merges
QuestionnaireResponses into it and resolves external answer lists.

Usage:
    from sdc_importer.service import FormImportService

    service = FormImportService()
    result = await service.import_form(questionnaire, response)
"""
__version__ = "1.0.0"
