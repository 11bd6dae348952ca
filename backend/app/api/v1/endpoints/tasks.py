"""Phase routes addressed by task id"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.capabilities import ActorContext
from app.modules.auth.dependencies import get_actor_context
from app.schemas.task import TaskResponse, TaskListResponse
from app.services.task_service import TaskWorkflowService

router = APIRouter(prefix="/tasks", tags=["Tasks"])


@router.get("/user/{student_id}", response_model=TaskListResponse)
async def list_tasks_for_student(
    student_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    tasks = await TaskWorkflowService(db).list_tasks_for_student(ctx, student_id)
    return TaskListResponse(tasks=[TaskResponse.model_validate(t) for t in tasks], total=len(tasks))


@router.get("/{task_id}", response_model=TaskResponse)
async def get_task(
    task_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskWorkflowService(db).get_task(ctx, task_id)
    return TaskResponse.model_validate(task)


@router.put("/{task_id}/submit", response_model=TaskResponse)
async def submit_task(
    task_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskWorkflowService(db).submit_task(ctx, task_id)
    return TaskResponse.model_validate(task)


@router.put("/{task_id}/approve", response_model=TaskResponse)
async def approve_task(
    task_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskWorkflowService(db).approve_task(ctx, task_id)
    return TaskResponse.model_validate(task)


@router.delete("/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(
    task_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    await TaskWorkflowService(db).delete_task(ctx, task_id)
