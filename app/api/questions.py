"""API endpoints for discriminative voir dire questions."""

from fastapi import APIRouter, HTTPException, Path

from app.core.logging import get_logger
from app.core.matching import get_matching_store, get_question_generator
from app.core.schemas_matching_api import (
    PanelQuestionsRequest,
    QuestionsRequest,
    QuestionsResponse,
)

logger = get_logger(__name__)

router = APIRouter()


@router.post("/jurors/{juror_id}/discriminative-questions", response_model=QuestionsResponse)
async def generate_juror_questions(
    juror_id: str = Path(..., description="Juror UUID"),
    request: QuestionsRequest | None = None,
) -> QuestionsResponse:
    """
    Questions that would separate the juror's ambiguous persona matches.

    An empty list means the matches are already distinct.

    Raises:
        HTTPException 404: If juror not found
        HTTPException 500: If generation fails
    """
    request = request or QuestionsRequest()

    try:
        juror = await get_matching_store().get_juror(juror_id)
        if not juror:
            raise HTTPException(status_code=404, detail=f"Juror {juror_id} not found")

        questions = await get_question_generator().generate_questions_for_juror(
            juror_id,
            persona_ids=request.persona_ids,
            organization_id=request.organization_id,
        )
        return QuestionsResponse(questions=questions, total=len(questions))

    except HTTPException:
        raise
    except Exception as e:
        error_msg = f"Failed to generate questions: {str(e)}"
        logger.error(error_msg, extra={"juror_id": juror_id})
        raise HTTPException(status_code=500, detail=error_msg) from e


@router.post("/cases/{case_id}/panel-questions", response_model=QuestionsResponse)
async def generate_panel_questions(
    case_id: str = Path(..., description="Case UUID"),
    request: PanelQuestionsRequest | None = None,
) -> QuestionsResponse:
    """
    Questions for ambiguities shared by several jurors on the panel (max 20).

    Raises:
        HTTPException 500: If generation fails
    """
    request = request or PanelQuestionsRequest()

    try:
        logger.info("Generating panel-wide questions", extra={"case_id": case_id})
        questions = await get_question_generator().generate_panel_wide_questions(
            case_id,
            juror_ids=request.juror_ids,
            persona_ids=request.persona_ids,
            organization_id=request.organization_id,
        )
        return QuestionsResponse(questions=questions, total=len(questions))

    except Exception as e:
        error_msg = f"Failed to generate panel questions: {str(e)}"
        logger.error(error_msg, extra={"case_id": case_id})
        raise HTTPException(status_code=500, detail=error_msg) from e
