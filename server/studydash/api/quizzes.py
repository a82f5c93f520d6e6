from fastapi import APIRouter, Depends, HTTPException

from studydash.api.deps import get_current_workspace, pending_notifications
from studydash.schemas.quiz import QuizListResponse
from studydash.services.errors import NotAuthenticatedError
from studydash.services.workspace import Workspace

router = APIRouter()


def _response(workspace: Workspace) -> QuizListResponse:
    catalog = workspace.quizzes
    return QuizListResponse(
        quizzes=catalog.quizzes,
        error=catalog.error,
        notifications=pending_notifications(workspace),
    )


@router.get("", response_model=QuizListResponse)
async def list_quizzes(workspace: Workspace = Depends(get_current_workspace)):
    try:
        await workspace.quizzes.fetch_quizzes()
    except NotAuthenticatedError:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _response(workspace)


@router.post("/refresh", response_model=QuizListResponse)
async def refresh_quizzes(workspace: Workspace = Depends(get_current_workspace)):
    try:
        await workspace.quizzes.refresh()
    except NotAuthenticatedError:
        raise HTTPException(status_code=401, detail="Not authenticated")
    return _response(workspace)
