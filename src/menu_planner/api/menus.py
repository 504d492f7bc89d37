"""Menu generation job endpoints."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request, status

from menu_planner.api.auth import require_token
from menu_planner.api.models import MenuRequestBody  # noqa: TC001
from menu_planner.domain.errors import JobNotFoundError

if TYPE_CHECKING:
    from menu_planner.containers import AppContainer

router = APIRouter(
    prefix="/menus", tags=["menus"], dependencies=[Depends(require_token)]
)


@router.post("/requests", status_code=status.HTTP_202_ACCEPTED)
async def create_menu_request(
    body: MenuRequestBody, request: Request, background_tasks: BackgroundTasks
) -> dict[str, object]:
    """Queue a menu generation job and start processing it."""
    container: AppContainer = request.app.state.container
    try:
        job = container.orchestrator.submit(
            user_id=body.user_id,
            start_date=body.start_date,
            target_slots=body.target_slots,
            prompt=body.prompt,
            constraints=body.constraints,
            ultimate_mode=body.ultimate_mode,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)
        ) from exc
    background_tasks.add_task(container.orchestrator.run_to_completion, job.id)
    return {"request_id": job.id, "status": job.status}


@router.get("/requests/{request_id}/status")
async def menu_request_status(request_id: str, request: Request) -> dict[str, object]:
    """Return progress of a generation job."""
    container: AppContainer = request.app.state.container
    try:
        return container.orchestrator.status(request_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc


@router.get("/requests/{request_id}/result")
async def menu_request_result(request_id: str, request: Request) -> dict[str, object]:
    """Return generated meals once the job has completed."""
    container: AppContainer = request.app.state.container
    try:
        result = container.orchestrator.result(request_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="job is not completed"
        )
    return result


@router.post("/requests/{request_id}/resume", status_code=status.HTTP_202_ACCEPTED)
async def resume_menu_request(
    request_id: str, request: Request, background_tasks: BackgroundTasks
) -> dict[str, object]:
    """Continue a job from its persisted cursor."""
    container: AppContainer = request.app.state.container
    try:
        state = container.orchestrator.status(request_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc
    if state["status"] not in {"completed", "failed"}:
        background_tasks.add_task(container.orchestrator.run_to_completion, request_id)
    return state


@router.post("/requests/{request_id}/cancel")
async def cancel_menu_request(request_id: str, request: Request) -> dict[str, object]:
    """Stop a job before its next batch."""
    container: AppContainer = request.app.state.container
    try:
        job = container.orchestrator.cancel(request_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND) from exc
    return {"request_id": job.id, "status": job.status, "error": job.error_message}
