import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from studydash.api.deps import get_current_workspace, pending_notifications, require_signed_in
from studydash.schemas.diagnostics import DiagnosticsReport
from studydash.schemas.slide import (
    DeleteOutcome,
    FileTypeFilter,
    LibrarySnapshot,
    SlideFilters,
    SlideResponse,
    SortOrder,
)
from studydash.services.errors import (
    NotAuthenticatedError,
    StoreConnectionError,
    StoreError,
    UploadValidationError,
)
from studydash.services.slide_upload import UploadCandidate, UploadForm
from studydash.services.workspace import Workspace

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/slides", response_model=LibrarySnapshot)
async def list_slides(
    search: str = "",
    course: Optional[str] = None,
    file_type: FileTypeFilter = FileTypeFilter.ALL,
    sort: SortOrder = SortOrder.NEWEST,
    workspace: Workspace = Depends(get_current_workspace),
):
    filters = SlideFilters(
        search=search,
        course=course if course and course != "all" else None,
        file_type=file_type,
        sort=sort,
    )
    library = workspace.library
    await library.fetch_list(filters)
    await library.settled()
    return library.snapshot()


@router.post("/slides", response_model=SlideResponse, status_code=201)
async def upload_slide(
    file: Optional[UploadFile] = File(None),
    title: str = Form(""),
    description: str = Form(""),
    course_id: str = Form(""),
    workspace: Workspace = Depends(require_signed_in),
):
    candidate = None
    if file is not None:
        # One byte past the limit is enough for the size check to reject it
        limit = workspace.uploader.settings.max_upload_bytes
        candidate = UploadCandidate(
            filename=file.filename or "upload",
            content_type=file.content_type or "application/octet-stream",
            data=await file.read(limit + 1),
        )
    form = UploadForm(file=candidate, title=title, description=description, course_id=course_id)

    try:
        record = await workspace.uploader.upload(form)
    except UploadValidationError as e:
        raise HTTPException(status_code=400, detail=f"{e.title}: {e.description}")
    except NotAuthenticatedError:
        raise HTTPException(status_code=401, detail="Not authenticated")
    except StoreConnectionError as e:
        raise HTTPException(status_code=503, detail=str(e))
    except StoreError as e:
        raise HTTPException(status_code=500, detail=f"Upload failed: {e}")

    await workspace.library.settled()
    return SlideResponse.model_validate(record)


@router.delete("/slides/{slide_id}", response_model=DeleteOutcome)
async def delete_slide(
    slide_id: str,
    file_path: str = "",
    workspace: Workspace = Depends(get_current_workspace),
):
    outcome = await workspace.library.delete_slide(slide_id, file_path)
    await workspace.library.settled()
    outcome.notifications = pending_notifications(workspace)
    return outcome


@router.post("/diagnostics", response_model=DiagnosticsReport)
async def run_diagnostics(workspace: Workspace = Depends(get_current_workspace)):
    return await workspace.diagnostics.run()
