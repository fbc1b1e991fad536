"""Pattern router for the recurring planner."""
from fastapi import APIRouter, Depends, Query, status
from typing import Any, Dict, Optional
from datetime import date

from recurring_planner.db.config import get_session
from recurring_planner.errors import create_success_response
from recurring_planner.schemas.pattern import (
    EnsureInstancesRequest,
    InstanceComplete,
    InstanceResponse,
    MigrationResult,
    PatternCreate,
    PatternResponse,
    PatternUpdate,
)
from recurring_planner.services.pattern_service import PatternService
from sqlmodel.ext.asyncio.session import AsyncSession

router = APIRouter(tags=["Patterns"])  # No prefix since main.py adds /api prefix


def get_pattern_service(session: AsyncSession = Depends(get_session)) -> PatternService:
    """Dependency for getting PatternService instance."""
    return PatternService(session)


def _instances(tasks) -> Dict[str, Any]:
    items = [InstanceResponse.model_validate(task) for task in tasks]
    return {"instances": items, "count": len(items)}


@router.post("/{user_id}/patterns", response_model=PatternResponse, status_code=status.HTTP_201_CREATED)
async def create_pattern(
    user_id: str,
    pattern_data: PatternCreate,
    service: PatternService = Depends(get_pattern_service),
):
    """Create a recurring pattern and materialize its first window of instances."""
    pattern = await service.create_pattern(user_id, pattern_data)
    return service.to_response(pattern)


@router.get("/{user_id}/patterns", response_model=Dict[str, Any])
async def list_patterns(
    user_id: str,
    service: PatternService = Depends(get_pattern_service),
):
    """List the user's active patterns."""
    patterns = [service.to_response(p) for p in await service.list_patterns(user_id)]
    return {"patterns": patterns, "count": len(patterns)}


@router.get("/{user_id}/patterns/{pattern_id}", response_model=PatternResponse)
async def get_pattern(
    user_id: str,
    pattern_id: str,
    service: PatternService = Depends(get_pattern_service),
):
    pattern = await service.get_pattern(pattern_id, user_id)
    return service.to_response(pattern)


@router.patch("/{user_id}/patterns/{pattern_id}", response_model=PatternResponse)
async def update_pattern(
    user_id: str,
    pattern_id: str,
    pattern_data: PatternUpdate,
    service: PatternService = Depends(get_pattern_service),
):
    """Update a pattern; end-condition changes and regeneration reconcile its instances."""
    pattern = await service.update_pattern(pattern_id, user_id, pattern_data)
    return service.to_response(pattern)


@router.delete("/{user_id}/patterns/{pattern_id}", response_model=Dict[str, Any])
async def delete_pattern(
    user_id: str,
    pattern_id: str,
    cascade_instances: bool = Query(False, description="Also soft-delete every instance of the pattern"),
    service: PatternService = Depends(get_pattern_service),
):
    deleted = await service.delete_pattern(pattern_id, user_id, cascade_instances=cascade_instances)
    return create_success_response({"pattern_id": pattern_id, "instances_deleted": deleted}, "Pattern deleted")


@router.post("/{user_id}/patterns/{pattern_id}/ensure", response_model=Dict[str, Any])
async def ensure_instances(
    user_id: str,
    pattern_id: str,
    request: EnsureInstancesRequest,
    service: PatternService = Depends(get_pattern_service),
):
    """Materialize instances so that the target date is covered."""
    tasks = await service.ensure_instances_for_date(pattern_id, user_id, request.target_date)
    return _instances(tasks)


@router.get("/{user_id}/patterns/{pattern_id}/instances", response_model=Dict[str, Any])
async def list_instances(
    user_id: str,
    pattern_id: str,
    from_date: Optional[date] = Query(None, description="Earliest scheduled date (inclusive)"),
    to_date: Optional[date] = Query(None, description="Latest scheduled date (inclusive)"),
    include_deleted: bool = Query(False),
    service: PatternService = Depends(get_pattern_service),
):
    tasks = await service.get_instances_for_pattern(
        pattern_id, user_id, from_date=from_date, to_date=to_date, include_deleted=include_deleted
    )
    return _instances(tasks)


@router.get("/{user_id}/patterns/{pattern_id}/preview", response_model=Dict[str, Any])
async def preview_pattern(
    user_id: str,
    pattern_id: str,
    from_date: date = Query(..., description="First date to render (inclusive)"),
    to_date: date = Query(..., description="Last date to render (inclusive)"),
    service: PatternService = Depends(get_pattern_service),
):
    """Render occurrences without persisting them."""
    occurrences = await service.preview_occurrences(pattern_id, user_id, from_date, to_date)
    return {"occurrences": occurrences, "count": len(occurrences)}


@router.get("/{user_id}/tasks/{task_id}/preview", response_model=Dict[str, Any])
async def preview_legacy_task(
    user_id: str,
    task_id: int,
    from_date: date = Query(...),
    to_date: date = Query(...),
    service: PatternService = Depends(get_pattern_service),
):
    """Render a legacy inline-recurrence task through the pattern generator."""
    occurrences = await service.preview_legacy_task(task_id, user_id, from_date, to_date)
    return {"occurrences": occurrences, "count": len(occurrences)}


@router.post("/{user_id}/tasks/{task_id}/complete", response_model=Dict[str, Any])
async def complete_task(
    user_id: str,
    task_id: int,
    body: Optional[InstanceComplete] = None,
    service: PatternService = Depends(get_pattern_service),
):
    """Complete a task; after-completion patterns schedule their next instance."""
    completion_date = body.completion_date if body else None
    task, next_instance = await service.complete_instance(task_id, user_id, completion_date)
    return {
        "task": InstanceResponse.model_validate(task),
        "next_instance": InstanceResponse.model_validate(next_instance) if next_instance else None,
    }


@router.post("/{user_id}/migrations/legacy", response_model=MigrationResult)
async def migrate_legacy(
    user_id: str,
    task_id: Optional[int] = Query(None, description="Migrate a single legacy task"),
    dry_run: bool = Query(False),
    service: PatternService = Depends(get_pattern_service),
):
    """Convert the user's legacy recurring tasks into patterns."""
    if task_id is not None:
        return await service.migrate_legacy_item(task_id, user_id, dry_run=dry_run)
    return await service.migrate_all_legacy_items(user_id, dry_run=dry_run)
