# Pydantic schemas
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
from app.schemas.task import TaskCreate, TaskResponse, ProjectTasksResponse, TaskListResponse
from app.schemas.user import (
    UserResponse,
    UserListResponse,
    AuthorizeRequest,
    SupervisorLoadResponse,
    SupervisorListResponse,
)
from app.schemas.chat import (
    ChatMessageCreate,
    ChatMessageResponse,
    ChatHistoryResponse,
    DirectMessageCreate,
    DirectChatHistoryResponse,
)
from app.schemas.notification import NotificationResponse, NotificationListResponse
