"""
Approval state machine for quotations.

The legal moves are data (``TRANSITIONS``); ``apply_transition`` checks a
requested action against the table, the approval flag, the approver hook
and the expired-tariff guard before returning the updated snapshot.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import date
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from ..dataclasses import ApprovalRecord, QuoteLineItem, QuoteStatus, Quotation

logger = logging.getLogger(__name__)


class QuotationError(Exception):
    """Base class for errors raised by quotation commands."""
    error_code = "QUOTATION_ERROR"


class IllegalTransition(QuotationError):
    error_code = "ILLEGAL_TRANSITION"


class ReasonRequired(QuotationError):
    error_code = "REASON_REQUIRED"


class NotAuthorized(QuotationError):
    error_code = "NOT_AUTHORIZED"


class TransitionBlocked(QuotationError):
    """Raised when expired tariff lines stop a quotation from moving forward."""
    error_code = "TRANSITION_BLOCKED"

    def __init__(self, message: str, lines: Tuple[QuoteLineItem, ...] = ()):
        super().__init__(message)
        self.lines = lines


class QuotationLocked(QuotationError):
    error_code = "QUOTATION_LOCKED"


class InvalidCommand(QuotationError):
    """Raised for requests that reference unknown options/lines or carry unusable values."""
    error_code = "INVALID_COMMAND"


class Action(str, Enum):
    SUBMIT_FOR_APPROVAL = "SUBMIT_FOR_APPROVAL"
    ATTEMPT_SUBMISSION = "ATTEMPT_SUBMISSION"
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    MARK_ACCEPTED = "MARK_ACCEPTED"
    CLIENT_REJECTED = "CLIENT_REJECTED"
    CANCEL = "CANCEL"
    REOPEN = "REOPEN"


@dataclass(frozen=True)
class Transition:
    """
    One row of the approval table.

    Attributes:
        action: what the user asks for
        sources: states the action is legal from
        target: resulting state
        requires_reason: a non-blank reason must accompany the action
        approver_only: the approver hook must accept the actor
        when_flagged: if set, the quotation's "requires approval" flag must equal it
        unlock: reopens a locked quotation; audited separately
    """
    action: Action
    sources: FrozenSet[QuoteStatus]
    target: QuoteStatus
    requires_reason: bool = False
    approver_only: bool = False
    when_flagged: Optional[bool] = None
    unlock: bool = False


S = QuoteStatus

TRANSITIONS: Dict[Action, Transition] = {
    t.action: t
    for t in (
        Transition(Action.SUBMIT_FOR_APPROVAL, frozenset({S.DRAFT}), S.VALIDATION, when_flagged=True),
        Transition(Action.ATTEMPT_SUBMISSION, frozenset({S.DRAFT}), S.SENT, when_flagged=False),
        Transition(Action.APPROVE, frozenset({S.VALIDATION}), S.SENT, approver_only=True),
        Transition(Action.REJECT, frozenset({S.VALIDATION}), S.DRAFT, requires_reason=True, approver_only=True),
        Transition(Action.MARK_ACCEPTED, frozenset({S.SENT}), S.ACCEPTED),
        Transition(Action.CLIENT_REJECTED, frozenset({S.SENT}), S.REJECTED, requires_reason=True),
        Transition(Action.CANCEL, frozenset({S.DRAFT, S.SENT}), S.CANCELLED, requires_reason=True),
        Transition(Action.REOPEN, frozenset({S.ACCEPTED, S.REJECTED}), S.DRAFT, unlock=True),
    )
}

# Targets that put a price in front of the client.
GUARDED_TARGETS = frozenset({S.VALIDATION, S.SENT, S.ACCEPTED})


class ApprovalPolicy:
    """Approver hook. The default lets anyone approve; deployments override it."""

    def can_approve(self, actor: Any) -> bool:
        return True


DEFAULT_POLICY = ApprovalPolicy()


def actor_label(actor: Any) -> Optional[str]:
    if actor is None:
        return None
    return getattr(actor, "username", None) or str(actor)


def expired_lines(quotation: Quotation, today: date) -> Tuple[QuoteLineItem, ...]:
    """Lines of the active option whose validity date is already past."""
    return tuple(item for item in quotation.active_option.items if item.is_expired(today))


def ensure_editable(quotation: Quotation) -> None:
    """Content edits are only accepted on a draft."""
    if quotation.status != QuoteStatus.DRAFT:
        hint = " Create a revision instead." if quotation.locked else ""
        raise QuotationLocked(
            f"Quotation {quotation.reference} v{quotation.version} is {quotation.status.value} and cannot be edited.{hint}"
        )


def check_transition(
    quotation: Quotation,
    action: Action,
    actor: Any = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    policy: Optional[ApprovalPolicy] = None,
) -> Transition:
    """Validate an action against the table; returns the matching row or raises."""
    action = Action(action)
    rule = TRANSITIONS[action]
    current = quotation.status

    if current not in rule.sources:
        raise IllegalTransition(f"Cannot {action.value} a quotation in {current.value}")

    if rule.when_flagged is not None and quotation.approval.requires_approval != rule.when_flagged:
        if rule.when_flagged:
            raise IllegalTransition("Quotation does not require approval; send it directly")
        raise IllegalTransition("Quotation requires manager approval; submit it for approval")

    if rule.requires_reason and not (reason or "").strip():
        raise ReasonRequired(f"A reason is required to {action.value}")

    if rule.approver_only and not (policy or DEFAULT_POLICY).can_approve(actor):
        raise NotAuthorized(f"{actor_label(actor) or 'Anonymous user'} is not allowed to {action.value}")

    if rule.target in GUARDED_TARGETS:
        stale = expired_lines(quotation, today or date.today())
        if stale:
            names = ", ".join(item.description or item.id for item in stale)
            raise TransitionBlocked(f"Expired rates on: {names}. Update the lines or cancel the quotation.", stale)

    return rule


def apply_transition(
    quotation: Quotation,
    action: Action,
    actor: Any = None,
    reason: Optional[str] = None,
    today: Optional[date] = None,
    policy: Optional[ApprovalPolicy] = None,
) -> Tuple[Quotation, Dict[str, Any]]:
    """
    Move the quotation along the approval table.

    Returns the new snapshot and an activity record; nothing is mutated.
    """
    rule = check_transition(quotation, action, actor, reason, today, policy)
    who = actor_label(actor)
    reason = (reason or "").strip() or None
    record = quotation.approval
    changes: Dict[str, Any] = {"status": rule.target}

    if rule.action in (Action.SUBMIT_FOR_APPROVAL, Action.ATTEMPT_SUBMISSION):
        changes["requested_by"] = who
    elif rule.action == Action.APPROVE:
        changes.update(approved_by=who, rejection_reason=None)
    elif rule.action in (Action.REJECT, Action.CLIENT_REJECTED):
        changes.update(rejection_reason=reason, approved_by=None)
    elif rule.action == Action.CANCEL:
        changes["cancellation_reason"] = reason
    elif rule.action == Action.REOPEN:
        changes["approved_by"] = None

    new_record: ApprovalRecord = replace(record, **changes)
    updated = replace(quotation, approval=new_record)

    activity = {
        "event": "UNLOCK" if rule.unlock else "TRANSITION",
        "action": rule.action.value,
        "from": quotation.status.value,
        "to": rule.target.value,
        "actor": who,
        "reason": reason,
    }
    if rule.action == Action.SUBMIT_FOR_APPROVAL:
        activity["triggers"] = [t.code for t in record.triggers]
        activity["approval_reason"] = record.reason
    log = logger.warning if rule.unlock else logger.info
    log("Quotation %s v%s: %s %s -> %s by %s", quotation.reference, quotation.version,
        rule.action.value, quotation.status.value, rule.target.value, who)
    return updated, activity


def available_actions(
    quotation: Quotation,
    actor: Any = None,
    today: Optional[date] = None,
    policy: Optional[ApprovalPolicy] = None,
) -> List[Action]:
    """Actions the actor could take right now, ignoring reason requirements."""
    allowed = []
    for action in TRANSITIONS:
        try:
            check_transition(quotation, action, actor, reason="-", today=today, policy=policy)
        except QuotationError:
            continue
        allowed.append(action)
    return allowed
