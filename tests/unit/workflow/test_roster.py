"""Tests for rule snapshots and roster construction."""

from uuid import uuid4

import pytest

from reimburse.core.workflow import (
    ApproverEntry,
    ConfigurationError,
    PolicyKind,
    RuleSnapshot,
    build_roster,
)
from reimburse.core.workflow.roster import default_rule


def _rule(policy_kind=PolicyKind.SPECIFIC, threshold=None, manager=True, approvers=()):
    return RuleSnapshot(
        rule_id=uuid4(),
        company_id=uuid4(),
        name="Travel",
        policy_kind=policy_kind,
        percentage_threshold=threshold,
        requires_manager_approval=manager,
        approvers=tuple(approvers),
    )


class TestBuildRoster:
    """Test roster ordering and the synthetic manager entry."""

    def test_manager_prepended_when_required(self):
        manager, alice = uuid4(), uuid4()
        roster = build_roster(_rule(approvers=[ApproverEntry(alice, 1)]), manager)

        assert [e.user_id for e in roster] == [manager, alice]
        assert roster.at(0).is_manager
        assert roster.at(0).sequence_order == 0
        assert not roster.at(0).auto_approve

    def test_no_manager_entry_when_submitter_has_no_manager(self):
        alice = uuid4()
        roster = build_roster(_rule(approvers=[ApproverEntry(alice, 1)]), None)

        assert [e.user_id for e in roster] == [alice]

    def test_manager_ignored_when_rule_does_not_require_it(self):
        alice = uuid4()
        roster = build_roster(_rule(manager=False, approvers=[ApproverEntry(alice, 1)]), uuid4())

        assert [e.user_id for e in roster] == [alice]

    def test_approvers_ordered_by_sequence_with_gaps(self):
        alice, bob, carol = uuid4(), uuid4(), uuid4()
        rule = _rule(
            manager=False,
            approvers=[ApproverEntry(carol, 10), ApproverEntry(alice, 1), ApproverEntry(bob, 4, True)],
        )
        roster = build_roster(rule, None)

        assert [e.user_id for e in roster] == [alice, bob, carol]
        assert roster.at(1).auto_approve

    def test_rule_is_not_modified(self):
        rule = _rule(approvers=[ApproverEntry(uuid4(), 2), ApproverEntry(uuid4(), 1)])
        before = rule.approvers
        build_roster(rule, uuid4())
        assert rule.approvers == before

    def test_occupant_outside_roster(self):
        alice = uuid4()
        roster = build_roster(_rule(manager=False, approvers=[ApproverEntry(alice, 1)]), None)

        assert roster.occupant(0) == alice
        assert roster.occupant(1) is None
        assert roster.occupant(-1) is None
        assert roster.includes(alice)
        assert not roster.includes(uuid4())


class TestRuleValidation:
    """Test rule checks applied before evaluation."""

    @pytest.mark.parametrize("kind", [PolicyKind.PERCENTAGE, PolicyKind.HYBRID])
    def test_quorum_rule_requires_threshold(self, kind):
        with pytest.raises(ConfigurationError, match="no percentage threshold"):
            _rule(policy_kind=kind).validate()

    @pytest.mark.parametrize("threshold", [0, 101, -5])
    def test_threshold_out_of_range(self, threshold):
        with pytest.raises(ConfigurationError, match="outside 1-100"):
            _rule(policy_kind=PolicyKind.PERCENTAGE, threshold=threshold).validate()

    @pytest.mark.parametrize("threshold", [1, 60, 100])
    def test_threshold_in_range(self, threshold):
        _rule(policy_kind=PolicyKind.HYBRID, threshold=threshold).validate()

    def test_specific_rule_needs_no_threshold(self):
        _rule(policy_kind=PolicyKind.SPECIFIC).validate()

    def test_duplicate_sequence_positions(self):
        rule = _rule(approvers=[ApproverEntry(uuid4(), 1), ApproverEntry(uuid4(), 1)])
        with pytest.raises(ConfigurationError, match="duplicate sequence"):
            rule.validate()

    def test_default_rule_is_manager_only(self):
        company_id = uuid4()
        rule = default_rule(company_id)
        manager = uuid4()

        assert rule.rule_id is None
        assert rule.company_id == company_id
        assert rule.policy_kind == PolicyKind.SPECIFIC
        assert [e.user_id for e in build_roster(rule, manager)] == [manager]
        assert len(build_roster(rule, None)) == 0
