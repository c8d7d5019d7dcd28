"""Role capabilities.

Every role check in the codebase goes through ``can`` so the mapping of
role to permitted action lives in one table.
"""
from enum import Enum
from typing import Dict, FrozenSet

from app.core.enums import UserRole


class Action(str, Enum):
    CASE_CREATE = "case:create"
    CASE_VIEW_ALL = "case:view_all"
    CASE_UPDATE_DETAILS = "case:update_details"
    CASE_CHANGE_STATUS = "case:change_status"
    CASE_ASSIGN = "case:assign"
    CASE_BE_ASSIGNED = "case:be_assigned"
    DOCUMENT_UPLOAD = "document:upload"
    DOCUMENT_REVIEW = "document:review"
    DOCUMENT_DELETE_ANY = "document:delete_any"
    ASSESSMENT_VIEW_ANY = "assessment:view_any"


CAPABILITIES: Dict[UserRole, FrozenSet[Action]] = {
    UserRole.CLIENT: frozenset({
        Action.CASE_CREATE,
        Action.DOCUMENT_UPLOAD,
    }),
    UserRole.TAX_PROFESSIONAL: frozenset({
        Action.CASE_CREATE,
        Action.CASE_UPDATE_DETAILS,
        Action.CASE_CHANGE_STATUS,
        Action.CASE_BE_ASSIGNED,
        Action.DOCUMENT_UPLOAD,
        Action.DOCUMENT_REVIEW,
        Action.ASSESSMENT_VIEW_ANY,
    }),
    UserRole.SUPPORT: frozenset({
        Action.CASE_CREATE,
        Action.DOCUMENT_UPLOAD,
    }),
    UserRole.ADMIN: frozenset(Action),
}


def can(role: UserRole | str, action: Action) -> bool:
    """Return True when ``role`` is allowed to perform ``action``."""
    try:
        role = UserRole(role)
    except ValueError:
        return False
    return action in CAPABILITIES.get(role, frozenset())


def can_access_case(user, case) -> bool:
    """Admins see everything, owners see their own, assigned professionals see theirs."""
    if can(user.role, Action.CASE_VIEW_ALL):
        return True
    if case.user_id == user.id:
        return True
    return (
        can(user.role, Action.CASE_BE_ASSIGNED)
        and case.assigned_to is not None
        and case.assigned_to == user.id
    )
