from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

# Health check schema
class HealthResponse(BaseModel):
    """Health check response"""
    status: str

# Import schemas
class ImportQuestionnaireRequest(BaseModel):
    """Request schema for importing a Questionnaire"""
    questionnaire: Dict[str, Any] = Field(..., description="FHIR R4 Questionnaire resource")
    response: Optional[Dict[str, Any]] = Field(None, description="QuestionnaireResponse to merge after import")
    load_answer_sets: bool = Field(default=False, description="Resolve answerValueSet references")

class MergeResponseRequest(BaseModel):
    """Request schema for merging a QuestionnaireResponse into a Questionnaire's form"""
    questionnaire: Dict[str, Any] = Field(..., description="FHIR R4 Questionnaire resource")
    response: Dict[str, Any] = Field(..., description="FHIR R4 QuestionnaireResponse resource")

class FormResponse(BaseModel):
    """Imported form, with any answer value sets that failed to load"""
    form: Dict[str, Any]
    answer_set_errors: List[str] = Field(default_factory=list)
