"""
Tests for transition capability checks.

Covers:
- AdvisoryPermissionChecker allows everything
- GrantPermissionChecker: exact, prefix and global grants
- Permission string format
"""

import pytest
from hypothesis import given
from hypothesis import strategies as st

from workflow_kernel.domain.permissions import (
    AdvisoryPermissionChecker,
    GrantPermissionChecker,
    PermissionChecker,
    is_well_formed_permission,
)
from workflow_kernel.domain.workflow import TransitionSpec

permissions = st.from_regex(
    r"[a-z][a-z0-9_]{0,8}(\.[a-z][a-z0-9_]{0,8}){1,3}", fullmatch=True,
)


def edge(permission):
    return TransitionSpec("SUBMITTED", "APPROVED", "APPROVE", permission)


class TestProtocol:

    @pytest.mark.parametrize("checker", [AdvisoryPermissionChecker(), GrantPermissionChecker()])
    def test_checkers_satisfy_protocol(self, checker):
        assert isinstance(checker, PermissionChecker)


class TestAdvisoryPermissionChecker:

    def test_allows_without_grants(self):
        assert AdvisoryPermissionChecker().can_execute([], edge("requests.approve"))


class TestGrantPermissionChecker:

    checker = GrantPermissionChecker()

    def test_no_required_permission(self):
        assert self.checker.can_execute([], edge(None))

    def test_exact_grant(self):
        assert self.checker.can_execute(["requests.approve"], edge("requests.approve"))

    def test_missing_grant(self):
        assert not self.checker.can_execute(["requests.reject"], edge("requests.approve"))

    def test_empty_grants(self):
        assert not self.checker.can_execute([], edge("requests.approve"))

    def test_global_wildcard(self):
        assert self.checker.can_execute(["*"], edge("presidency.approve"))

    def test_prefix_wildcard(self):
        assert self.checker.can_execute(["requests.*"], edge("requests.final_approve"))

    def test_prefix_wildcard_needs_segment_boundary(self):
        assert not self.checker.can_execute(["request.*"], edge("requests.approve"))

    def test_prefix_wildcard_other_domain(self):
        assert not self.checker.can_execute(["requests.*"], edge("presidency.approve"))

    def test_grants_may_be_any_iterable(self):
        grants = (g for g in ["presidency.approve"])
        assert self.checker.can_execute(grants, edge("presidency.approve"))

    @given(permission=permissions)
    def test_exact_and_prefix_grants_always_allow(self, permission):
        domain = permission.split(".")[0]
        assert self.checker.can_execute([permission], edge(permission))
        assert self.checker.can_execute([f"{domain}.*"], edge(permission))

    @given(permission=permissions, other=permissions)
    def test_unrelated_grant_never_allows(self, permission, other):
        if other == permission:
            return
        assert not self.checker.can_execute([other], edge(permission))


class TestPermissionFormat:

    @pytest.mark.parametrize(
        "value", ["requests.approve", "requests.final_approve", "presidency.approve"],
    )
    def test_well_formed(self, value):
        assert is_well_formed_permission(value)

    @pytest.mark.parametrize("value", ["approve", "Requests.Approve", "requests.", "requests approve"])
    def test_malformed(self, value):
        assert not is_well_formed_permission(value)
