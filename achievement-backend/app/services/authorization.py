# app/services/authorization.py
"""
Authorization scoping for achievement operations.

A caller is described by an AuthContext handed over by the authentication
layer. Two questions are answered here:

* may this role perform this kind of action at all (capabilities), and
* which students may it act on (scope): a student only itself, an advisor
  its advisees, an admin everyone.
"""
from dataclasses import dataclass
from enum import Enum
from typing import FrozenSet, Optional, Iterable
import logging

from app.core.exceptions import Forbidden
from app.repositories.relationships import RelationshipDirectory

logger = logging.getLogger(__name__)

class Role(str, Enum):
    STUDENT = "student"
    ADVISOR = "advisor"
    ADMIN = "admin"

class Action(str, Enum):
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    SUBMIT = "submit"
    DELETE = "delete"
    VERIFY = "verify"
    REJECT = "reject"
    PURGE = "purge"

CAPABILITIES = {
    Role.STUDENT: frozenset({Action.READ, Action.CREATE, Action.UPDATE, Action.SUBMIT, Action.DELETE}),
    Role.ADVISOR: frozenset({Action.READ, Action.VERIFY, Action.REJECT}),
    Role.ADMIN: frozenset({Action.READ, Action.VERIFY, Action.REJECT, Action.PURGE}),
}

@dataclass(frozen=True)
class AuthContext:
    """Verified identity supplied by the authentication layer"""
    user_id: str
    role: Role
    student_id: Optional[str] = None
    lecturer_id: Optional[str] = None

    @property
    def actor_id(self) -> str:
        """Id recorded as the decision maker on verify"""
        return self.lecturer_id or self.user_id

@dataclass(frozen=True)
class StudentScope:
    unrestricted: bool = False
    student_ids: FrozenSet[str] = frozenset()

    def __contains__(self, student_id: str) -> bool:
        return self.unrestricted or student_id in self.student_ids

    def as_filter(self) -> Optional[FrozenSet[str]]:
        """None means no filter; otherwise the ids to restrict queries to"""
        return None if self.unrestricted else self.student_ids

    @classmethod
    def everyone(cls) -> "StudentScope":
        return cls(unrestricted=True)

    @classmethod
    def only(cls, student_ids: Iterable[str]) -> "StudentScope":
        return cls(student_ids=frozenset(s for s in student_ids if s))


class AuthorizationService:

    def __init__(self, directory: RelationshipDirectory):
        self.directory = directory

    def scope_for(self, actor: AuthContext) -> StudentScope:
        """Students the caller may act on"""
        if actor.role == Role.ADMIN:
            return StudentScope.everyone()

        if actor.role == Role.STUDENT:
            return StudentScope.only([actor.student_id] if actor.student_id else [])

        if actor.role == Role.ADVISOR:
            if not actor.lecturer_id:
                return StudentScope.only([])
            return StudentScope.only(self.directory.advisees_of(actor.lecturer_id))

        return StudentScope.only([])

    def require_capability(self, actor: AuthContext, action: Action) -> None:
        if action not in CAPABILITIES.get(actor.role, frozenset()):
            logger.info(f"Denied {action.value} for role {actor.role.value} (user {actor.user_id})")
            raise Forbidden(f"role '{actor.role.value}' may not {action.value} achievements")

    def require_student(self, actor: AuthContext, action: Action, student_id: str) -> None:
        """Capability check plus scope check against one target student"""
        self.require_capability(actor, action)

        if actor.role == Role.ADMIN:
            return

        if actor.role == Role.STUDENT:
            allowed = bool(actor.student_id) and actor.student_id == student_id
        elif actor.role == Role.ADVISOR:
            allowed = bool(actor.lecturer_id) and self.directory.is_advisor_of(actor.lecturer_id, student_id)
        else:
            allowed = False

        if not allowed:
            logger.info(
                f"Denied {action.value} on student {student_id} for {actor.role.value} {actor.user_id}"
            )
            raise Forbidden(f"not allowed to {action.value} achievements of student {student_id}")
