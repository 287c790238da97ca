"""
Tests for company roles and the mutation policy.
"""
import pytest

from weave_client.permissions import (
    CompanyRole,
    RolePolicy,
    can_mutate_data,
    resolve_company_role,
    to_company_role,
)


@pytest.mark.parametrize(
    "value,expected",
    [
        ("root", CompanyRole.ROOT),
        (" Admin ", CompanyRole.ROOT),
        ("owner", CompanyRole.ROOT),
        ("editor", CompanyRole.MEMBER),
        ("READ_ONLY", CompanyRole.VIEWER),
        ("readonly", CompanyRole.VIEWER),
        ("guest", None),
        (42, None),
    ],
)
def test_to_company_role(value, expected):
    assert to_company_role(value) == expected


def test_resolve_prefers_root_flag():
    assert resolve_company_role("viewer", is_root=True) is CompanyRole.ROOT
    assert resolve_company_role("viewer", is_root=False) is CompanyRole.VIEWER
    assert resolve_company_role("unknown") is CompanyRole.ROOT
    assert resolve_company_role("unknown", fallback=CompanyRole.VIEWER) is CompanyRole.VIEWER


def test_only_viewers_are_read_only():
    assert can_mutate_data(CompanyRole.ROOT)
    assert can_mutate_data(CompanyRole.MEMBER)
    assert not can_mutate_data(CompanyRole.VIEWER)


class TestRolePolicy:
    def test_unset_role_allows_mutations(self):
        policy = RolePolicy()
        assert policy.role is None
        assert policy() is True

    def test_viewer_blocks(self):
        policy = RolePolicy("viewer")
        assert policy.can_mutate() is False

    def test_set_role(self):
        policy = RolePolicy("viewer")
        policy.set_role("member")
        assert policy() is True
        policy.set_role("viewer", is_root=True)
        assert policy.role is CompanyRole.ROOT
        policy.set_role()
        assert policy.role is None
