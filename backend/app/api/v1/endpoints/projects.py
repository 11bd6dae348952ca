"""
Project, group and phase routes

Thin adapter: parse the body, build the actor context, call the service,
shape the response. Every rule lives in the services.
"""
from fastapi import APIRouter, Depends, status
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.project import Project
from app.modules.auth.capabilities import ActorContext
from app.modules.auth.dependencies import get_actor_context
from app.schemas.project import (
    ProjectCreate,
    ProjectStatusUpdate,
    ProposalReview,
    GroupFormation,
    MemberAdd,
    HeadPromotion,
    ProjectResponse,
    ProjectListResponse,
)
from app.schemas.task import TaskCreate, TaskResponse, ProjectTasksResponse
from app.services.group_service import GroupService
from app.services.project_service import ProjectService
from app.services.task_service import TaskWorkflowService

router = APIRouter(prefix="/projects", tags=["Projects"])


def build_project_response(project: Project) -> ProjectResponse:
    return ProjectResponse.model_validate(project)


# ==================== Project Endpoints ====================

@router.post("", response_model=ProjectResponse, status_code=status.HTTP_201_CREATED)
async def create_project(
    data: ProjectCreate,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectService(db).create_project(ctx, data)
    return build_project_response(project)


@router.get("", response_model=ProjectListResponse)
async def list_projects(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    projects = await ProjectService(db).list_projects(ctx)
    return ProjectListResponse(
        projects=[build_project_response(p) for p in projects],
        total=len(projects),
    )


@router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(
    project_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectService(db).get_project(ctx, project_id)
    return build_project_response(project)


@router.patch("/{project_id}/status", response_model=ProjectResponse)
async def update_project_status(
    project_id: str,
    data: ProjectStatusUpdate,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectService(db).update_status(ctx, project_id, data.status)
    return build_project_response(project)


@router.post("/{project_id}/review", response_model=ProjectResponse)
async def review_proposal(
    project_id: str,
    data: ProposalReview,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await ProjectService(db).review_proposal(ctx, project_id, data.approve)
    return build_project_response(project)


# ==================== Group Endpoints ====================

@router.put("/{project_id}/group", response_model=ProjectResponse)
async def convert_to_group(
    project_id: str,
    data: GroupFormation,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await GroupService(db).convert_to_group(ctx, project_id, data.member_ids, data.project_head_id)
    return build_project_response(project)


@router.post("/{project_id}/members", response_model=ProjectResponse)
async def add_member(
    project_id: str,
    data: MemberAdd,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await GroupService(db).add_member(ctx, project_id, data.student_id)
    return build_project_response(project)


@router.delete("/{project_id}/members/{student_id}", response_model=ProjectResponse)
async def remove_member(
    project_id: str,
    student_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await GroupService(db).remove_member(ctx, project_id, student_id)
    return build_project_response(project)


@router.put("/{project_id}/head", response_model=ProjectResponse)
async def promote_to_head(
    project_id: str,
    data: HeadPromotion,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    project = await GroupService(db).promote_to_head(ctx, project_id, data.member_id)
    return build_project_response(project)


# ==================== Phase Endpoints ====================

@router.post("/{project_id}/tasks", response_model=TaskResponse, status_code=status.HTTP_201_CREATED)
async def create_task(
    project_id: str,
    data: Optional[TaskCreate] = None,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    task = await TaskWorkflowService(db).create_task(ctx, project_id, data)
    return TaskResponse.model_validate(task)


@router.get("/{project_id}/tasks", response_model=ProjectTasksResponse)
async def list_project_tasks(
    project_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    active, history = await TaskWorkflowService(db).list_project_tasks(ctx, project_id)
    return ProjectTasksResponse(
        project_id=project_id,
        active=[TaskResponse.model_validate(t) for t in active],
        history=[TaskResponse.model_validate(t) for t in history],
    )
