# Authentication and role resolution

from app.modules.auth.capabilities import (
    Capability,
    ActorContext,
    resolve_capabilities,
    require,
)
from app.modules.auth.dependencies import (
    get_current_user,
    get_actor_context,
)

__all__ = [
    # Role resolution
    "Capability",
    "ActorContext",
    "resolve_capabilities",
    "require",
    # User authentication
    "get_current_user",
    "get_actor_context",
]
