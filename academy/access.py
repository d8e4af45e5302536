"""
Authorization

Role and enrollment checks for every router. Handlers never inspect roles or
enrollments on their own; they depend on the helpers below.
"""

import logging
from dataclasses import dataclass
from typing import Mapping

from fastapi import Depends, HTTPException

from .jwt_auth import get_current_user
from .models import CurrentUser
from .repository import has_completed_enrollment

logger = logging.getLogger(__name__)

PAID_ACCESS_REQUIRED = "PAID_ACCESS_REQUIRED"
ACCESS_DENIED = "Acceso denegado"


def can_access_module(has_enrollment: bool, is_admin: bool, order_index: int) -> bool:
    """Admins see everything, the first module is free, the rest need a completed enrollment"""
    if is_admin:
        return True
    if order_index == 0:
        return True
    return has_enrollment


@dataclass(frozen=True)
class AccessContext:
    """What the current caller may see, resolved once per request"""

    user: CurrentUser
    has_enrollment: bool

    @property
    def is_admin(self) -> bool:
        return self.user.is_admin

    @property
    def has_paid_access(self) -> bool:
        return self.is_admin or self.has_enrollment

    def can_access(self, module: Mapping) -> bool:
        order_index = module.get("order_index")
        if order_index is None:
            return self.has_paid_access
        return can_access_module(self.has_enrollment, self.is_admin, int(order_index))

    def ensure_module_access(self, module: Mapping) -> None:
        if not self.can_access(module):
            raise HTTPException(status_code=403, detail=PAID_ACCESS_REQUIRED)

    def ensure_paid_access(self) -> None:
        if not self.has_paid_access:
            raise HTTPException(status_code=403, detail=PAID_ACCESS_REQUIRED)


def load_access_context(cursor, user: CurrentUser) -> AccessContext:
    """Build the caller's access context; admins skip the enrollment lookup"""
    if user.is_admin:
        return AccessContext(user=user, has_enrollment=True)
    return AccessContext(user=user, has_enrollment=has_completed_enrollment(cursor, user.id))


def require_admin(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency for admin-only endpoints: 401 without a session, 403 for non-admins"""
    if not user.is_admin:
        logger.warning(f"Admin endpoint refused for user {user.id}")
        raise HTTPException(status_code=403, detail=ACCESS_DENIED)
    return user


def can_moderate_post(user: CurrentUser, post: Mapping) -> bool:
    """Forum posts are marked answered by their author or by an admin"""
    return user.is_admin or post.get("user_id") == user.id


def ensure_can_moderate_post(user: CurrentUser, post: Mapping) -> None:
    if not can_moderate_post(user, post):
        raise HTTPException(status_code=403, detail=ACCESS_DENIED)
