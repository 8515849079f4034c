import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, status

from . import schemas
from .config import settings
from .service import FormImportService

logger = logging.getLogger(__name__)

_service = None

def get_service() -> FormImportService:
    """Shared import service; its answer-set cache lives as long as the app"""
    global _service
    if _service is None:
        _service = FormImportService()
    return _service

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Configure logging on startup, release HTTP clients on shutdown"""
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    logger.info("%s started", settings.app_name)
    yield
    if _service is not None:
        await _service.close()

# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    description="FHIR SDC Questionnaire import and QuestionnaireResponse merge",
    version="1.0.0",
    debug=settings.debug,
    lifespan=lifespan
)

@app.get("/health", response_model=schemas.HealthResponse)
def health_check():
    """Health check endpoint - returns {"status": "ok"}"""
    return {"status": "ok"}

@app.post("/questionnaire/import", response_model=schemas.FormResponse)
async def import_questionnaire(
    request: schemas.ImportQuestionnaireRequest,
    service: FormImportService = Depends(get_service)
):
    """
    Import a Questionnaire into form data

    Optionally resolves answer value sets and merges a QuestionnaireResponse.
    Value sets that fail to load are listed in `answer_set_errors`.
    """
    try:
        result = await service.import_form(
            request.questionnaire,
            response=request.response,
            load_answer_sets=request.load_answer_sets,
        )
    except Exception as e:
        logger.exception("Questionnaire import failed")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Questionnaire import failed: {str(e)}"
        )
    if not result.success:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=result.error)
    return {
        "form": result.form.to_dict(),
        "answer_set_errors": result.answer_set_errors,
    }

@app.post("/questionnaire-response/merge", response_model=schemas.FormResponse)
def merge_questionnaire_response(
    request: schemas.MergeResponseRequest,
    service: FormImportService = Depends(get_service)
):
    """Import a Questionnaire and merge a QuestionnaireResponse into it"""
    if request.questionnaire.get("resourceType") != "Questionnaire":
        raise HTTPException(status_code=400, detail="A Questionnaire resource is required")
    try:
        form = service.convert(request.questionnaire)
        service.merge(form, request.response)
    except Exception as e:
        logger.exception("QuestionnaireResponse merge failed")
        raise HTTPException(
            status_code=500,
            detail=f"QuestionnaireResponse merge failed: {str(e)}"
        )
    return {"form": form.to_dict(), "answer_set_errors": []}
