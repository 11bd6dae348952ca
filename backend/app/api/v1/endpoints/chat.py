"""Project and direct channel routes"""
from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.modules.auth.capabilities import ActorContext
from app.modules.auth.dependencies import get_actor_context
from app.schemas.chat import (
    ChatMessageCreate,
    ChatMessageResponse,
    ChatHistoryResponse,
    DirectMessageCreate,
    DirectChatHistoryResponse,
)
from app.services.chat_service import ChatService, can_post, direct_channel_id
from app.services.project_service import get_project_or_404

router = APIRouter(prefix="/chat", tags=["Chat"])


# Registered before /{project_id} so "direct" is never read as a project id
@router.get("/direct/{user_id}", response_model=DirectChatHistoryResponse)
async def list_direct_messages(
    user_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    messages = await ChatService(db).list_direct(ctx, user_id)
    return DirectChatHistoryResponse(
        channel_id=direct_channel_id(ctx.user_id, user_id),
        counterpart_id=user_id,
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )


@router.post("/direct", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def post_direct_message(
    data: DirectMessageCreate,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    message = await ChatService(db).post_direct(ctx, data.recipient_id, data.text)
    return ChatMessageResponse.model_validate(message)


@router.get("/{project_id}", response_model=ChatHistoryResponse)
async def list_messages(
    project_id: str,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    messages = await ChatService(db).list_messages(ctx, project_id)
    project = await get_project_or_404(db, project_id)
    return ChatHistoryResponse(
        project_id=project_id,
        can_post=can_post(ctx, project),
        messages=[ChatMessageResponse.model_validate(m) for m in messages],
    )


@router.post("/{project_id}", response_model=ChatMessageResponse, status_code=status.HTTP_201_CREATED)
async def post_message(
    project_id: str,
    data: ChatMessageCreate,
    ctx: ActorContext = Depends(get_actor_context),
    db: AsyncSession = Depends(get_db),
):
    message = await ChatService(db).post_message(ctx, project_id, data.text)
    return ChatMessageResponse.model_validate(message)
