"""Migration control endpoints."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from ..models import (
    BatchRequest,
    Envelope,
    LogResponse,
    SettingsUpdate,
    StartRequest,
)
from ...controller import MigrationController
from ...exceptions import InvalidSettings

router = APIRouter()


def get_controller(request: Request) -> MigrationController:
    controller = getattr(request.app.state, "controller", None)
    if controller is None:
        raise HTTPException(status_code=503, detail="Migration controller not configured")
    return controller


def respond(payload: Dict[str, Any]) -> JSONResponse:
    """Send an envelope; failed envelopes go out as 400."""
    return JSONResponse(content=payload, status_code=200 if payload["success"] else 400)


@router.get("/mappings", response_model=Envelope)
def get_mappings(controller: MigrationController = Depends(get_controller)):
    """Preview the relationship -> taxonomy mapping."""
    return respond(controller.get_mappings())


@router.post("/batch", response_model=Envelope)
def process_batch(data: BatchRequest, controller: MigrationController = Depends(get_controller)):
    """Process one batch of connections."""
    return respond(controller.process_batch(data.offset, data.batch_size, data.dry_run))


@router.post("/start", response_model=Envelope)
def start_migration(
    data: Optional[StartRequest] = None,
    controller: MigrationController = Depends(get_controller),
):
    """Start a migration run with its first batch."""
    data = data or StartRequest()
    return respond(controller.start(dry_run=data.dry_run, batch_size=data.batch_size))


@router.post("/pause", response_model=Envelope)
def pause_migration(controller: MigrationController = Depends(get_controller)):
    """Pause a running migration."""
    return respond(controller.pause())


@router.post("/resume", response_model=Envelope)
def resume_migration(controller: MigrationController = Depends(get_controller)):
    """Resume a paused migration."""
    return respond(controller.resume())


@router.post("/cancel", response_model=Envelope)
def cancel_migration(controller: MigrationController = Depends(get_controller)):
    """Cancel a running or paused migration."""
    return respond(controller.cancel())


@router.post("/reset", response_model=Envelope)
def reset_migration(controller: MigrationController = Depends(get_controller)):
    """Reset the migration to not_started."""
    return respond(controller.reset())


@router.post("/rollback", response_model=Envelope)
def rollback_migration(controller: MigrationController = Depends(get_controller)):
    """Remove migrated term assignments from every source post."""
    return respond(controller.rollback())


@router.get("/status", response_model=Envelope)
async def get_status(controller: MigrationController = Depends(get_controller)):
    """Current status and progress."""
    return respond(controller.status())


@router.get("/statistics", response_model=Envelope)
def get_statistics(controller: MigrationController = Depends(get_controller)):
    """Connection statistics (read-only)."""
    return respond(controller.statistics())


@router.get("/log", response_model=LogResponse)
def get_log(
    limit: Optional[int] = Query(default=None, ge=1, le=1000),
    controller: MigrationController = Depends(get_controller),
):
    """Most recent log entries."""
    entries = controller.get_log(limit)
    return LogResponse(entries=entries, total=len(entries))


@router.put("/settings", response_model=Envelope)
def save_settings(data: SettingsUpdate, controller: MigrationController = Depends(get_controller)):
    """Persist migration settings."""
    try:
        return respond(controller.save_settings(data.batch_size))
    except InvalidSettings as e:
        raise HTTPException(status_code=400, detail=e.message)
