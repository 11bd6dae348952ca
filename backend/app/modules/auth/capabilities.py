"""
Identity & Role Resolver

Maps a role to the set of operations it may attempt. Relationship checks
(is this supervisor the one on the project, is this student the assignee)
live in the services; this module only answers "may this role try at all".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Dict, Optional, Union

from app.core.exceptions import UnauthorizedError
from app.models.user import User, UserRole


class Capability(str, Enum):
    """Every gated operation"""
    CREATE_PROJECT = "create_project"
    CHOOSE_PROJECT_TYPE = "choose_project_type"
    UPDATE_PROJECT_STATUS = "update_project_status"
    REVIEW_PROPOSAL = "review_proposal"
    MANAGE_GROUP = "manage_group"
    CREATE_TASK = "create_task"
    SUBMIT_TASK = "submit_task"
    APPROVE_TASK = "approve_task"
    POST_MESSAGE = "post_message"
    VIEW_PROJECTS = "view_projects"
    VIEW_OWN_STUDENTS = "view_own_students"
    ASSIGN_SUPERVISOR = "assign_supervisor"
    VIEW_UNASSIGNED = "view_unassigned"
    VIEW_SUPERVISORS = "view_supervisors"
    OVERSEE_ANY_PROJECT = "oversee_any_project"


_STUDENT = frozenset({
    Capability.CREATE_PROJECT,
    Capability.SUBMIT_TASK,
    Capability.POST_MESSAGE,
    Capability.VIEW_PROJECTS,
})

_SUPERVISOR = frozenset({
    Capability.CREATE_PROJECT,
    Capability.CHOOSE_PROJECT_TYPE,
    Capability.UPDATE_PROJECT_STATUS,
    Capability.REVIEW_PROPOSAL,
    Capability.MANAGE_GROUP,
    Capability.CREATE_TASK,
    Capability.APPROVE_TASK,
    Capability.POST_MESSAGE,
    Capability.VIEW_PROJECTS,
    Capability.VIEW_OWN_STUDENTS,
})

_SUPER_ADMIN = _SUPERVISOR | frozenset({
    Capability.ASSIGN_SUPERVISOR,
    Capability.VIEW_UNASSIGNED,
    Capability.VIEW_SUPERVISORS,
    Capability.OVERSEE_ANY_PROJECT,
})

ROLE_CAPABILITIES: Dict[UserRole, FrozenSet[Capability]] = {
    UserRole.STUDENT: _STUDENT,
    UserRole.SUPERVISOR: _SUPERVISOR,
    UserRole.SUPER_ADMIN: _SUPER_ADMIN,
}

# Adding a role without a capability row must fail at import
_missing_roles = set(UserRole) - set(ROLE_CAPABILITIES)
if _missing_roles:
    raise RuntimeError(f"No capability set for roles: {sorted(r.value for r in _missing_roles)}")


def coerce_role(role: Union[UserRole, str, None]) -> Optional[UserRole]:
    """Return the matching UserRole, or None for anything unrecognised"""
    if isinstance(role, UserRole):
        return role
    if isinstance(role, str):
        try:
            return UserRole(role)
        except ValueError:
            return None
    return None


def resolve_capabilities(role: Union[UserRole, str, None]) -> FrozenSet[Capability]:
    """Capabilities for a role; empty (fail closed) when the role is unknown"""
    resolved = coerce_role(role)
    if resolved is None:
        return frozenset()
    return ROLE_CAPABILITIES[resolved]


@dataclass(frozen=True)
class ActorContext:
    """
    The explicit session object passed into every service call.

    Services never read identity from request globals; whoever calls them
    builds one of these from the authenticated user.
    """
    user_id: str
    role: Optional[UserRole]
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    @classmethod
    def for_user(cls, user: User) -> "ActorContext":
        role = coerce_role(user.role)
        return cls(user_id=str(user.id), role=role, capabilities=resolve_capabilities(role))

    @classmethod
    def for_role(cls, user_id: str, role: Union[UserRole, str, None]) -> "ActorContext":
        resolved = coerce_role(role)
        return cls(user_id=user_id, role=resolved, capabilities=resolve_capabilities(resolved))

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @property
    def is_super_admin(self) -> bool:
        return self.can(Capability.OVERSEE_ANY_PROJECT)

    @property
    def is_student(self) -> bool:
        return self.role == UserRole.STUDENT

    @property
    def is_supervisor(self) -> bool:
        return self.role == UserRole.SUPERVISOR


def require(ctx: ActorContext, capability: Capability) -> None:
    """Raise UnauthorizedError unless the actor's role grants ``capability``"""
    if not ctx.can(capability):
        raise UnauthorizedError(
            f"Role '{ctx.role.value if ctx.role else 'unknown'}' may not {capability.value.replace('_', ' ')}",
            action=capability.value,
        )
