# src/weave_client/permissions.py

from enum import Enum
from typing import Any, Optional


class CompanyRole(str, Enum):
    ROOT = "root"
    MEMBER = "member"
    VIEWER = "viewer"


ROLE_ALIAS_MAP = {
    "root": CompanyRole.ROOT,
    "admin": CompanyRole.ROOT,
    "owner": CompanyRole.ROOT,
    "member": CompanyRole.MEMBER,
    "editor": CompanyRole.MEMBER,
    "viewer": CompanyRole.VIEWER,
    "readonly": CompanyRole.VIEWER,
    "read-only": CompanyRole.VIEWER,
    "read_only": CompanyRole.VIEWER,
}


def to_company_role(value: Any) -> Optional[CompanyRole]:
    if isinstance(value, CompanyRole):
        return value
    if not isinstance(value, str):
        return None
    return ROLE_ALIAS_MAP.get(value.strip().lower())


def resolve_company_role(
    role: Any = None,
    is_root: Any = None,
    fallback: CompanyRole = CompanyRole.ROOT,
) -> CompanyRole:
    """An explicit root flag wins; unknown roles resolve to ``fallback``."""
    if is_root is True:
        return CompanyRole.ROOT
    return to_company_role(role) or fallback


def can_mutate_data(role: CompanyRole) -> bool:
    return role is not CompanyRole.VIEWER


class RolePolicy:
    """
    Authorization policy consulted by ApiClient before mutating requests.

    Holds the signed-in user's company role; a viewer is read-only. With no
    role set, mutations are allowed and the server decides.
    """

    def __init__(self, role: Any = None):
        self._role: Optional[CompanyRole] = to_company_role(role)

    @property
    def role(self) -> Optional[CompanyRole]:
        return self._role

    def set_role(self, role: Any = None, is_root: Any = None) -> None:
        if role is None and is_root is None:
            self._role = None
            return
        self._role = resolve_company_role(role, is_root)

    def can_mutate(self) -> bool:
        return self._role is None or can_mutate_data(self._role)

    def __call__(self) -> bool:
        return self.can_mutate()
