"""Approval chain transition table.

Single source of truth for who may move a record out of which status:
(current status, acting role) -> (forward status, rejection status).
Rejection targets are named per role; they are not "one step back".
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ..core.enums import AttendanceStatus as S
from ..core.enums import Role


@dataclass(frozen=True)
class TransitionRule:
    forward: S
    reject_to: Optional[S] = None


TRANSITIONS: dict[tuple[S, Role], TransitionRule] = {
    (S.PENDING_SUPERVISOR, Role.SUPERVISOR): TransitionRule(forward=S.PENDING_GS),
    (S.PENDING_GS, Role.GENERAL_SUPERVISOR): TransitionRule(forward=S.PENDING_HEALTH, reject_to=S.PENDING_SUPERVISOR),
    (S.PENDING_HEALTH, Role.HEALTH_DIRECTOR): TransitionRule(forward=S.PENDING_HR, reject_to=S.PENDING_GS),
    (S.PENDING_HR, Role.HR): TransitionRule(forward=S.PENDING_AUDIT, reject_to=S.PENDING_GS),
    (S.PENDING_AUDIT, Role.INTERNAL_AUDIT): TransitionRule(forward=S.PENDING_FINANCE, reject_to=S.PENDING_HR),
    (S.PENDING_FINANCE, Role.FINANCE): TransitionRule(forward=S.PENDING_PAYROLL, reject_to=S.PENDING_HR),
    (S.PENDING_PAYROLL, Role.PAYROLL): TransitionRule(forward=S.APPROVED, reject_to=S.PENDING_FINANCE),
}

# Administrative override: the only way out of the terminal state.
REOPEN_TRANSITIONS: dict[tuple[S, Role], S] = {
    (S.APPROVED, Role.ADMIN): S.PENDING_FINANCE,
}

# Roles that may submit a month's figures (field supervisors, or higher roles on their behalf).
SUBMITTING_ROLES = frozenset({Role.SUPERVISOR, Role.GENERAL_SUPERVISOR, Role.ADMIN})

TERMINAL_STATUSES = frozenset({S.APPROVED})


def rule_for(status: S, role: Role) -> Optional[TransitionRule]:
    return TRANSITIONS.get((status, role))


def holder_of(status: S) -> Optional[Role]:
    """Role currently holding a record at `status` (None for the terminal state)."""
    for (st, role) in TRANSITIONS:
        if st == status:
            return role
    return None


def initial_status(submitting_role: Role) -> S:
    """Status a fresh submission enters the chain at.

    Submission satisfies the supervisor step. A general supervisor would
    otherwise approve their own submission, so it skips one stage further.
    """
    if submitting_role == Role.GENERAL_SUPERVISOR:
        return TRANSITIONS[(S.PENDING_GS, Role.GENERAL_SUPERVISOR)].forward
    return S.PENDING_GS
