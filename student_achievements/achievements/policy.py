"""
Capability and transition policy for the achievement workflow.

This module is pure data plus small lookup helpers, so that adding a role or
an operation is a table change rather than a change at every call site.

Capabilities:
- Mahasiswa (student): create, edit, upload_attachment, submit, delete, view, list
- Dosen Wali (advisor): verify, reject, view, list
- Admin: view, list

Visibility:
- student sees own achievements
- advisor sees achievements of assigned advisees
- admin sees everything

Transitions:
- edit / upload_attachment: draft -> draft
- submit: draft -> submitted
- delete: draft -> deleted
- verify: submitted -> verified
- reject: submitted -> rejected
"""

from __future__ import annotations

from typing import Dict, FrozenSet, NamedTuple, Optional

from .enums import AchievementStatus, Operation, Role, VisibilityScope
from .errors import ValidationError


class Transition(NamedTuple):
    """Required current status and resulting status of an operation."""

    source: AchievementStatus
    target: AchievementStatus
    denied_message: str


CAPABILITIES: Dict[Role, FrozenSet[Operation]] = {
    Role.STUDENT: frozenset(
        {
            Operation.CREATE,
            Operation.EDIT,
            Operation.UPLOAD_ATTACHMENT,
            Operation.SUBMIT,
            Operation.DELETE,
            Operation.VIEW,
            Operation.LIST,
        }
    ),
    Role.ADVISOR: frozenset(
        {Operation.VERIFY, Operation.REJECT, Operation.VIEW, Operation.LIST}
    ),
    Role.ADMIN: frozenset({Operation.VIEW, Operation.LIST}),
}

VISIBILITY: Dict[Role, VisibilityScope] = {
    Role.STUDENT: VisibilityScope.OWN,
    Role.ADVISOR: VisibilityScope.ADVISEES,
    Role.ADMIN: VisibilityScope.ALL,
}

TRANSITIONS: Dict[Operation, Transition] = {
    Operation.EDIT: Transition(
        AchievementStatus.DRAFT,
        AchievementStatus.DRAFT,
        "Only draft achievements may be edited",
    ),
    Operation.UPLOAD_ATTACHMENT: Transition(
        AchievementStatus.DRAFT,
        AchievementStatus.DRAFT,
        "Attachments may only be added while the achievement is a draft",
    ),
    Operation.SUBMIT: Transition(
        AchievementStatus.DRAFT,
        AchievementStatus.SUBMITTED,
        "Only draft achievements may be submitted",
    ),
    Operation.DELETE: Transition(
        AchievementStatus.DRAFT,
        AchievementStatus.DELETED,
        "Only draft achievements may be deleted",
    ),
    Operation.VERIFY: Transition(
        AchievementStatus.SUBMITTED,
        AchievementStatus.VERIFIED,
        "Only submitted achievements may be verified",
    ),
    Operation.REJECT: Transition(
        AchievementStatus.SUBMITTED,
        AchievementStatus.REJECTED,
        "Only submitted achievements may be rejected",
    ),
}

_CAPABILITY_DENIED: Dict[Operation, str] = {
    Operation.CREATE: "Only students may report achievements",
    Operation.EDIT: "Only students may edit achievements",
    Operation.UPLOAD_ATTACHMENT: "Only students may upload attachments",
    Operation.SUBMIT: "Only students may submit achievements",
    Operation.DELETE: "Only students may delete achievements",
    Operation.VERIFY: "Access denied, user is not a lecturer",
    Operation.REJECT: "Access denied, user is not a lecturer",
}


def parse_role(raw: Optional[str]) -> Role:
    """Map a role claim onto the closed Role enum."""
    try:
        return Role(raw)
    except ValueError:
        raise ValidationError(f"Unrecognized role: {raw!r}") from None


def can(role: Role, operation: Operation) -> bool:
    """Return True if the role holds the capability."""
    return operation in CAPABILITIES.get(role, frozenset())


def ensure_capability(role: Role, operation: Operation) -> None:
    """Raise ValidationError unless the role may perform the operation."""
    if not can(role, operation):
        raise ValidationError(
            _CAPABILITY_DENIED.get(operation, f"Role {role.value} may not {operation.value}")
        )


def visibility_for(role: Role) -> VisibilityScope:
    """Return the read scope of a role."""
    return VISIBILITY[role]


def ensure_transition(operation: Operation, current: str) -> Transition:
    """Raise ValidationError unless the operation is legal from ``current``."""
    transition = TRANSITIONS[operation]
    if current != transition.source.value:
        raise ValidationError(transition.denied_message)
    return transition
