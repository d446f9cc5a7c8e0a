"""Access control — roles and the operation-level role gate."""

from seatledger.access.roles import AccessControl, RoleRegistry, requires_role

__all__ = ["AccessControl", "RoleRegistry", "requires_role"]
