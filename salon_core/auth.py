"""
Request identity and tenant access

Authentication itself happens upstream; requests reach this service with the
caller's id in the X-User-Id header. Whether that user may act on a salon is
answered by an AccessChecker.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from fastapi import Depends, Header, HTTPException, Request

logger = logging.getLogger(__name__)


class AccessChecker(ABC):
    @abstractmethod
    async def has_access_to_salon(self, user_id: str, salon_id: str) -> bool: ...


class StaticAccessChecker(AccessChecker):
    """Grants read from configuration: {user_id: [salon_id, ...]}; "*" grants every salon"""

    def __init__(self, grants: dict[str, list[str]]):
        self.grants = {user_id: set(salons) for user_id, salons in grants.items()}

    async def has_access_to_salon(self, user_id: str, salon_id: str) -> bool:
        salons = self.grants.get(user_id, set())
        return "*" in salons or salon_id in salons


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id:
        raise HTTPException(status_code=401, detail="Missing user identity")
    return x_user_id


async def require_salon_access(
    salon_id: str,
    request: Request,
    user_id: str = Depends(get_current_user_id),
) -> str:
    """Dependency for routes under /salons/{salon_id}; returns the salon id"""
    checker: AccessChecker = request.app.state.container.access_checker
    if not await checker.has_access_to_salon(user_id, salon_id):
        logger.warning(f"⚠️ User {user_id} denied access to salon {salon_id}")
        raise HTTPException(status_code=403, detail="Access to this salon is not allowed")
    return salon_id
