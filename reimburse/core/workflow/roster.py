"""Rule snapshots and approval rosters.

A roster is built fresh for every decision from an immutable snapshot of
the rule, so nothing computed for one decision can leak into the next.
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple
from uuid import UUID

from .errors import ConfigurationError
from .states import PolicyKind, QUORUM_POLICIES


@dataclass(frozen=True)
class ApproverEntry:
    """A designated approver of a rule."""
    user_id: UUID
    sequence_order: int
    auto_approve: bool = False


@dataclass(frozen=True)
class RuleSnapshot:
    """Read-only view of an approval rule at decision time."""
    rule_id: Optional[UUID]
    company_id: UUID
    name: str
    policy_kind: PolicyKind
    percentage_threshold: Optional[int] = None
    requires_manager_approval: bool = True
    is_active: bool = True
    approvers: Tuple[ApproverEntry, ...] = ()

    @property
    def uses_quorum(self) -> bool:
        return self.policy_kind in QUORUM_POLICIES

    def validate(self) -> None:
        """
        Check the rule can be evaluated.

        Raises:
            ConfigurationError: If a quorum rule lacks a threshold in 1..100,
                or two approvers share a sequence position
        """
        if self.uses_quorum:
            if self.percentage_threshold is None:
                raise ConfigurationError(
                    f"Rule '{self.name}' is {self.policy_kind.value} but has no percentage threshold"
                )
            if not 1 <= self.percentage_threshold <= 100:
                raise ConfigurationError(
                    f"Rule '{self.name}' threshold {self.percentage_threshold} is outside 1-100"
                )

        positions = [a.sequence_order for a in self.approvers]
        if len(positions) != len(set(positions)):
            raise ConfigurationError(f"Rule '{self.name}' has duplicate sequence positions")


def default_rule(company_id: UUID) -> RuleSnapshot:
    """Rule applied to expenses submitted without one: the submitter's manager signs off."""
    return RuleSnapshot(
        rule_id=None,
        company_id=company_id,
        name="Manager approval",
        policy_kind=PolicyKind.SPECIFIC,
        requires_manager_approval=True,
    )


@dataclass(frozen=True)
class RosterEntry:
    """One step of an approval roster."""
    user_id: UUID
    sequence_order: int
    auto_approve: bool = False
    is_manager: bool = False


@dataclass(frozen=True)
class RosterSnapshot:
    """Ordered, immutable list of the approvers for one expense."""
    entries: Tuple[RosterEntry, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)

    def at(self, step: int) -> Optional[RosterEntry]:
        """Entry occupying ``step``, or None when the step is outside the roster."""
        if 0 <= step < len(self.entries):
            return self.entries[step]
        return None

    def occupant(self, step: int) -> Optional[UUID]:
        entry = self.at(step)
        return entry.user_id if entry else None

    def includes(self, user_id: UUID) -> bool:
        return any(e.user_id == user_id for e in self.entries)


def build_roster(rule: RuleSnapshot, manager_id: Optional[UUID]) -> RosterSnapshot:
    """
    Build the approval roster for an expense.

    When the rule requires manager approval and the submitter has a manager,
    a synthetic manager entry is placed first (sequence 0, never
    auto-approving). The rule's approvers follow in sequence order.

    Args:
        rule: Snapshot of the expense's rule
        manager_id: The submitter's direct manager, if any

    Returns:
        A new roster; the rule is not modified
    """
    entries = []
    if rule.requires_manager_approval and manager_id is not None:
        entries.append(RosterEntry(user_id=manager_id, sequence_order=0, is_manager=True))

    for approver in sorted(rule.approvers, key=lambda a: a.sequence_order):
        entries.append(
            RosterEntry(
                user_id=approver.user_id,
                sequence_order=approver.sequence_order,
                auto_approve=approver.auto_approve,
            )
        )

    return RosterSnapshot(entries=tuple(entries))
