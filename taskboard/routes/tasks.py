"""
Taskboard Backend — Task Route Handlers
=========================================

What:  Thin task CRUD. Writes go through TaskService, which fires the
       mutation hooks before the response is produced.
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from taskboard.database import get_db_session
from taskboard.deps import get_current_user_id
from taskboard.schemas.common import Envelope, ErrorResponse
from taskboard.schemas.task import TaskCreate, TaskResponse, TaskUpdate
from taskboard.services.task_service import task_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tasks", tags=["Tasks"])

TASK_ERRORS = {
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
}


@router.post(
    "",
    response_model=Envelope[TaskResponse],
    status_code=status.HTTP_201_CREATED,
    responses={400: {"model": ErrorResponse}, **TASK_ERRORS},
    summary="Create a task",
)
async def create_task(
    body: TaskCreate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[TaskResponse]:
    task = await task_service.create_task(db, user_id, body)
    return Envelope(data=TaskResponse.model_validate(task))


@router.get(
    "/{task_id}",
    response_model=Envelope[TaskResponse],
    responses=TASK_ERRORS,
    summary="Get a task",
)
async def get_task(
    task_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[TaskResponse]:
    task = await task_service.get_task(db, task_id, user_id)
    return Envelope(data=TaskResponse.model_validate(task))


@router.patch(
    "/{task_id}",
    response_model=Envelope[TaskResponse],
    responses={400: {"model": ErrorResponse}, **TASK_ERRORS},
    summary="Update a task (creator or assignee)",
)
async def update_task(
    task_id: UUID,
    body: TaskUpdate,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[TaskResponse]:
    task = await task_service.update_task(db, task_id, user_id, body)
    return Envelope(data=TaskResponse.model_validate(task))


@router.delete(
    "/{task_id}",
    response_model=Envelope[None],
    responses=TASK_ERRORS,
    summary="Delete a task (creator only)",
)
async def delete_task(
    task_id: UUID,
    user_id: UUID = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> Envelope[None]:
    await task_service.delete_task(db, task_id, user_id)
    return Envelope(data=None)
