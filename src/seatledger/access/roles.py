"""Role-based access control for ledger operations.

Every service operation declares the one role it needs with
``@requires_role(Role.X)``; ``@requires_role(None)`` marks a public
operation. The decorator stores the role on the function as
``required_role`` so it can be inspected without calling anything:

    SeatLedgerService.finalize_course.required_role   # Role.ADMIN

Role storage sits behind the AccessControl Protocol. RoleRegistry is the
in-memory implementation.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Dict, List, Optional, Protocol, Set, TypeVar, runtime_checkable

from seatledger.errors import InvalidInput
from seatledger.models.course import Role


F = TypeVar("F", bound=Callable[..., Any])


@runtime_checkable
class AccessControl(Protocol):
    """Abstract contract for role storage."""

    def has_role(self, identity: str, role: Role) -> bool:
        ...

    def grant_role(self, identity: str, role: Role) -> None:
        ...

    def revoke_role(self, identity: str, role: Role) -> None:
        ...


class RoleRegistry:
    """In-memory role membership."""

    def __init__(self) -> None:
        self._members: Dict[Role, Set[str]] = {role: set() for role in Role}

    def has_role(self, identity: str, role: Role) -> bool:
        return identity in self._members[role]

    def grant_role(self, identity: str, role: Role) -> None:
        if not identity or not identity.strip():
            raise InvalidInput("Identity must not be blank")
        self._members[role].add(identity)

    def revoke_role(self, identity: str, role: Role) -> None:
        self._members[role].discard(identity)

    def members(self, role: Role) -> List[str]:
        return sorted(self._members[role])

    def snapshot(self) -> Dict[str, Any]:
        return {role.value: sorted(ids) for role, ids in self._members.items()}

    def restore(self, state: Dict[str, Any]) -> None:
        self._members = {role: set(state.get(role.value, [])) for role in Role}


def requires_role(role: Optional[Role]) -> Callable[[F], F]:
    """Tag a service method with the role its caller must hold.

    The wrapped method's first positional argument after ``self`` is the
    caller identity. The owning object must provide ``_authorize(caller,
    role)``, which returns an error result or None.
    """

    def decorator(fn: F) -> F:
        @functools.wraps(fn)
        def wrapper(self: Any, caller: str, *args: Any, **kwargs: Any) -> Any:
            if role is not None:
                denied = self._authorize(caller, role)
                if denied is not None:
                    return denied
            return fn(self, caller, *args, **kwargs)

        wrapper.required_role = role  # type: ignore[attr-defined]
        return wrapper  # type: ignore[return-value]

    return decorator
