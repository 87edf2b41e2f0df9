"""
Request-scoped identity and role checks.

Every accessor call receives a UserContext explicitly. Permission checks
happen at the accessor boundary, never inside the tree walker.
"""

from dataclasses import dataclass
from typing import Optional

from ..database.exceptions import ForbiddenError
from ..models.records import UserRole


@dataclass(frozen=True)
class UserContext:
    """Who is calling, as resolved by the upstream identity provider."""
    user_id: int
    role: UserRole = UserRole.EXECUTIVE
    email: Optional[str] = None
    department_id: Optional[int] = None

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == UserRole.MANAGER


def require_superadmin(ctx: UserContext, action: str) -> None:
    """Raise ForbiddenError unless the caller is a superadmin."""
    if not ctx.is_superadmin:
        raise ForbiddenError(f"Only superadmins can {action}")
