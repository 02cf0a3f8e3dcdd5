"""
Capability checks for workflow transitions.

Responsibility:
    Decides whether an actor holding a set of permission grants may execute
    a transition that names a ``required_permission``.  The executor only
    consults a checker when the caller supplies the actor's grants; without
    them the required permission is reported back and enforcement stays with
    the caller.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Grant syntax:
    ``requests.approve``   exact permission
    ``requests.*``         every permission under the ``requests`` prefix
    ``*``                  every permission
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from workflow_kernel.domain.workflow import TransitionSpec

WILDCARD = "*"

# dotted lowercase segments, e.g. "requests.final_approve"
PERMISSION_PATTERN = re.compile(r"^[a-z][a-z0-9_]*(\.[a-z][a-z0-9_]*)+$")


def is_well_formed_permission(permission: str) -> bool:
    return bool(PERMISSION_PATTERN.match(permission))


@runtime_checkable
class PermissionChecker(Protocol):
    """Protocol for transition capability checks."""

    def can_execute(
        self,
        actor_permissions: Iterable[str],
        transition: TransitionSpec,
    ) -> bool:
        ...


class AdvisoryPermissionChecker:
    """Allows every transition; the caller enforces ``required_permission``."""

    def can_execute(
        self,
        actor_permissions: Iterable[str],
        transition: TransitionSpec,
    ) -> bool:
        return True


class GrantPermissionChecker:
    """
    Enforces ``required_permission`` against the actor's grants.

    Guarantees:
        - A transition without a required permission is always allowed.
        - ``*`` grants everything; ``prefix.*`` grants everything below
          ``prefix``.
    """

    def can_execute(
        self,
        actor_permissions: Iterable[str],
        transition: TransitionSpec,
    ) -> bool:
        required = transition.required_permission
        if required is None:
            return True

        grants = set(actor_permissions)
        if WILDCARD in grants or required in grants:
            return True

        for grant in grants:
            if grant.endswith(".*") and required.startswith(grant[:-1]):
                return True
        return False
