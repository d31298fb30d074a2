"""Tests for flow snapshots and flow resolution."""

import pytest

from approvalflow.core.approvers import ImmediateSuperior, RoleHolders
from approvalflow.core.errors import FlowNotFound, InvalidFlowConfiguration
from approvalflow.core.flows import FlowResolver, FlowSnapshot
from approvalflow.core.rules import MatchPolicy

from tests.factories import add_rule, create_flow, create_module


class TestFlowSnapshot:
    """Test pinning flow templates."""

    def test_from_model_copies_rules_and_steps(self, db_session):
        flow = create_flow(
            db_session,
            name="Travel-High",
            rules=[("amount", ">", "5000")],
            steps=[("immediate_superior", None), ("role", "vp")],
            timeout_seconds=600,
        )
        snapshot = FlowSnapshot.from_model(flow)

        assert snapshot.flow_id == flow.id
        assert snapshot.match_policy == MatchPolicy.ALL
        assert [r.field for r in snapshot.rules] == ["amount"]
        assert [s.approver for s in snapshot.steps] == [ImmediateSuperior(), RoleHolders("vp")]
        assert snapshot.last_step_order == 2
        assert snapshot.timeout_period.total_seconds() == 600

    def test_inactive_steps_are_dropped(self, db_session):
        flow = create_flow(
            db_session,
            steps=[
                {"step_order": 1, "approver_type": "immediate_superior"},
                {"step_order": 2, "approver_type": "role", "approver_ref": "vp"},
                {"step_order": 3, "approver_type": "role", "approver_ref": "cfo", "is_active": False},
            ],
        )
        assert FlowSnapshot.from_model(flow).last_step_order == 2

    def test_step_gap_fails_fast(self, db_session):
        flow = create_flow(
            db_session,
            steps=[
                {"step_order": 1, "approver_type": "immediate_superior"},
                {"step_order": 3, "approver_type": "role", "approver_ref": "vp"},
            ],
        )
        with pytest.raises(InvalidFlowConfiguration):
            FlowSnapshot.from_model(flow)

    def test_inactive_middle_step_is_a_gap(self, db_session):
        flow = create_flow(
            db_session,
            steps=[
                {"step_order": 1, "approver_type": "immediate_superior"},
                {"step_order": 2, "approver_type": "department_head", "is_active": False},
                {"step_order": 3, "approver_type": "role", "approver_ref": "vp"},
            ],
        )
        with pytest.raises(InvalidFlowConfiguration):
            FlowSnapshot.from_model(flow)

    def test_dict_round_trip(self, db_session):
        flow = create_flow(db_session, rules=[("grade", "IN", "1,2")], steps=[("fixed_user", "carol")])
        snapshot = FlowSnapshot.from_model(flow)
        assert FlowSnapshot.from_dict(snapshot.to_dict()) == snapshot

    def test_missing_step_order(self, db_session):
        snapshot = FlowSnapshot.from_model(create_flow(db_session))
        with pytest.raises(InvalidFlowConfiguration):
            snapshot.step(2)


class TestFlowResolver:
    """Test first-match-wins resolution with default fallback."""

    def test_rule_match(self, db_session, travel_module):
        snapshot = FlowResolver(db_session).resolve(travel_module.id, {"amount": 6000})
        assert snapshot.name == "Travel-High"
        assert snapshot.last_step_order == 3

    def test_default_fallback(self, db_session, travel_module):
        resolution = FlowResolver(db_session).resolve_with_trace(travel_module.id, {"amount": 800})
        assert resolution.snapshot.name == "Travel-Default"
        assert resolution.used_default is True
        assert [c.matched for c in resolution.candidates] == [False]

    def test_first_match_wins_by_id(self, db_session):
        module = create_module(db_session)
        first = create_flow(db_session, module=module, name="First", rules=[("amount", ">", "100")])
        create_flow(db_session, module=module, name="Second", rules=[("amount", ">", "1000")])
        snapshot = FlowResolver(db_session).resolve(module.id, {"amount": 5000})
        assert snapshot.flow_id == first.id

    def test_inactive_flow_never_selected(self, db_session):
        module = create_module(db_session)
        create_flow(db_session, module=module, rules=[("amount", ">", "100")], is_active=False)
        create_flow(db_session, module=module, is_default=True, is_active=False)
        with pytest.raises(FlowNotFound) as exc_info:
            FlowResolver(db_session).resolve(module.id, {"amount": 5000})
        assert exc_info.value.module_id == module.id

    def test_no_match_and_no_default(self, db_session):
        module = create_module(db_session)
        create_flow(db_session, module=module, rules=[("amount", ">", "100")])
        with pytest.raises(FlowNotFound):
            FlowResolver(db_session).resolve(module.id, {"amount": 5})

    def test_rule_free_flow_is_not_a_candidate(self, db_session):
        module = create_module(db_session)
        create_flow(db_session, module=module, name="No rules")
        with pytest.raises(FlowNotFound):
            FlowResolver(db_session).resolve(module.id, {})

    def test_any_policy(self, db_session):
        module = create_module(db_session)
        create_flow(
            db_session,
            module=module,
            name="Abroad or large",
            match_policy="ANY",
            rules=[("amount", ">", "5000"), ("country", "!=", "PT")],
        )
        snapshot = FlowResolver(db_session).resolve(module.id, {"amount": 10, "country": "ES"})
        assert snapshot.name == "Abroad or large"

    def test_broken_rule_set_is_skipped(self, db_session):
        module = create_module(db_session)
        broken = create_flow(db_session, module=module, name="Broken", rules=[("amount", ">", "1")])
        add_rule(db_session, broken, "amount", "LIKE", "1%", order=1)
        create_flow(db_session, module=module, name="Fallback", rules=[("amount", ">", "1")])

        resolution = FlowResolver(db_session).resolve_with_trace(module.id, {"amount": 50})
        assert resolution.snapshot.name == "Fallback"
        assert resolution.candidates[0].error is not None

    def test_multiple_active_defaults(self, db_session):
        module = create_module(db_session)
        create_flow(db_session, module=module, is_default=True)
        create_flow(db_session, module=module, is_default=True)
        with pytest.raises(InvalidFlowConfiguration):
            FlowResolver(db_session).resolve(module.id, {})

    def test_resolution_reads_current_catalog(self, db_session, travel_module):
        resolver = FlowResolver(db_session)
        assert resolver.resolve(travel_module.id, {"amount": 800}).name == "Travel-Default"
        assert resolver.resolve(travel_module.id, {"amount": 9000}).name == "Travel-High"
