"""
Users and allocation routes

- /users/me           - the caller
- /users/unassigned   - students waiting for a supervisor (super-admin)
- /users/supervisors  - supervisors with capacity and load (super-admin)
- /users/my-students  - students allocated to the calling supervisor
- /users/authorize    - allocate a student to a supervisor (super-admin)
"""
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.models.user import User
from app.modules.auth.capabilities import ActorContext
from app.modules.auth.dependencies import get_current_user, get_actor_context
from app.schemas.user import (
    UserResponse,
    UserListResponse,
    AuthorizeRequest,
    SupervisorLoadResponse,
    SupervisorListResponse,
)
from app.services.allocation_service import AllocationService

router = APIRouter(prefix="/users", tags=["Users"])


def build_user_list(users) -> UserListResponse:
    return UserListResponse(users=[UserResponse.model_validate(u) for u in users], total=len(users))


@router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return UserResponse.model_validate(current_user)


@router.get("/unassigned", response_model=UserListResponse)
async def list_unassigned_students(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    students = await AllocationService(db).list_unassigned(ctx)
    return build_user_list(students)


@router.get("/supervisors", response_model=SupervisorListResponse)
async def list_supervisors(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    loads = await AllocationService(db).list_supervisors(ctx)
    return SupervisorListResponse(
        supervisors=[SupervisorLoadResponse(**load.to_dict()) for load in loads],
        total=len(loads),
    )


@router.get("/my-students", response_model=UserListResponse)
async def list_my_students(
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    students = await AllocationService(db).list_my_students(ctx)
    return build_user_list(students)


@router.post("/authorize", response_model=UserResponse)
async def authorize_student(
    data: AuthorizeRequest,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    student = await AllocationService(db).authorize(ctx, data.student_id, data.supervisor_id)
    return UserResponse.model_validate(student)
