"""Approval chain resolution and escalation targets."""

from __future__ import annotations

import logging
from typing import Optional, Sequence

from leavecore.common.constants import ApprovalLevel, UserRole
from leavecore.common.exceptions import ValidationException
from leavecore.reference.schemas import Employee, LeaveTypeDefinition
from leavecore.reference.service import ReferenceSource
from leavecore.workflow.schemas import ApprovalChainRule, ChainLink

logger = logging.getLogger(__name__)

DEFAULT_LEVELS: tuple[ApprovalLevel, ...] = (ApprovalLevel.manager,)

DEFAULT_CHAIN_RULES: tuple[ApprovalChainRule, ...] = (
    ApprovalChainRule(
        name="director-requests",
        priority=10,
        levels=(ApprovalLevel.executive,),
        requester_roles=frozenset({UserRole.department_director}),
    ),
    ApprovalChainRule(
        name="special-leave",
        priority=20,
        levels=(ApprovalLevel.manager, ApprovalLevel.department_director, ApprovalLevel.hr),
        special_only=True,
    ),
)


def matches(rule: ApprovalChainRule, leave_type: LeaveTypeDefinition, requester: Employee) -> bool:
    if not rule.is_active:
        return False
    if rule.leave_types is not None and leave_type.code not in rule.leave_types:
        return False
    if rule.special_only and not leave_type.is_special:
        return False
    if rule.requester_roles is not None and requester.role not in rule.requester_roles:
        return False
    return True


def select_levels(
    rules: Sequence[ApprovalChainRule],
    leave_type: LeaveTypeDefinition,
    requester: Employee,
) -> tuple[ApprovalLevel, ...]:
    for rule in sorted(rules, key=lambda r: r.priority):
        if matches(rule, leave_type, requester):
            logger.debug("Chain rule %s matched for %s", rule.name, requester.id)
            return rule.levels
    return DEFAULT_LEVELS


async def _first_with_role(
    reference: ReferenceSource, role: UserRole, exclude: set[str],
) -> Optional[str]:
    for employee in await reference.employees_with_role(role):
        if employee.id not in exclude:
            return employee.id
    return None


async def resolve_approver(
    reference: ReferenceSource, requester: Employee, level: ApprovalLevel,
) -> Optional[str]:
    if level == ApprovalLevel.manager:
        return requester.manager_id
    if level == ApprovalLevel.department_director:
        return requester.department_director_id
    if level == ApprovalLevel.hr:
        return await _first_with_role(reference, UserRole.hr, {requester.id})
    return await _first_with_role(reference, UserRole.executive, {requester.id})


async def resolve_chain(
    reference: ReferenceSource,
    rules: Sequence[ApprovalChainRule],
    leave_type: LeaveTypeDefinition,
    requester: Employee,
) -> list[ChainLink]:
    """Levels for the request with approvers resolved.

    Levels that resolve to nobody, to the requester, or to an approver
    already in the chain are skipped. An empty chain falls back to HR.
    """
    chain: list[ChainLink] = []
    for level in select_levels(rules, leave_type, requester):
        approver = await resolve_approver(reference, requester, level)
        if approver is None or approver == requester.id:
            logger.info("Skipping %s level for %s: no eligible approver", level.value, requester.id)
            continue
        if any(link.approver_id == approver for link in chain):
            continue
        chain.append(ChainLink(level=level, approver_id=approver))

    if not chain:
        hr = await _first_with_role(reference, UserRole.hr, {requester.id})
        if hr is None:
            raise ValidationException({"approver": [f"No approver available for {requester.id}."]})
        chain.append(ChainLink(level=ApprovalLevel.hr, approver_id=hr))
    return chain


async def escalation_target(
    reference: ReferenceSource, assignee_id: str, requester_id: str,
) -> Optional[str]:
    """Assignee's manager, else an HR approver, else an executive."""
    exclude = {assignee_id, requester_id}
    assignee = await reference.get_employee(assignee_id)
    if assignee.manager_id and assignee.manager_id not in exclude:
        return assignee.manager_id
    hr = await _first_with_role(reference, UserRole.hr, exclude)
    if hr is not None:
        return hr
    return await _first_with_role(reference, UserRole.executive, exclude)
