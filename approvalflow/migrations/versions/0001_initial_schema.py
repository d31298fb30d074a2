"""Initial schema: modules, flow templates, approval instances, decision log

Revision ID: 0001
Revises: None
Create Date: 2026-10-19

This migration:
1. Creates the flow catalog tables (modules, flows, rules, steps)
2. Creates the instance runtime tables (instances, eligible approvers, decisions)
3. On PostgreSQL, installs triggers that make approval_decisions append-only
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables."""

    # --- modules (no FK deps) ---
    op.create_table(
        "modules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_modules"),
        sa.UniqueConstraint("name", name="uq_modules_name"),
    )

    # --- approval_flows (FK -> modules) ---
    op.create_table(
        "approval_flows",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("match_policy", sa.String(3), nullable=False, server_default="ALL"),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("timeout_seconds", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_flows"),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], name="fk_approval_flows_module_id_modules"),
        sa.CheckConstraint("match_policy IN ('ALL', 'ANY')", name="ck_approval_flows_match_policy"),
    )
    op.create_index("ix_approval_flows_module_id", "approval_flows", ["module_id"])

    # --- approval_flow_rules (FK -> approval_flows) ---
    op.create_table(
        "approval_flow_rules",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("flow_id", sa.Integer(), nullable=False),
        sa.Column("field", sa.String(255), nullable=False),
        sa.Column("operator", sa.String(16), nullable=False),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column("rule_order", sa.Integer(), nullable=False, server_default="0"),
        sa.PrimaryKeyConstraint("id", name="pk_approval_flow_rules"),
        sa.ForeignKeyConstraint(
            ["flow_id"], ["approval_flows.id"],
            name="fk_approval_flow_rules_flow_id_approval_flows", ondelete="CASCADE",
        ),
    )
    op.create_index("ix_approval_flow_rules_flow_id", "approval_flow_rules", ["flow_id"])

    # --- approval_flow_steps (FK -> approval_flows) ---
    op.create_table(
        "approval_flow_steps",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("flow_id", sa.Integer(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("approver_type", sa.String(32), nullable=False),
        sa.Column("approver_ref", sa.String(255), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_flow_steps"),
        sa.ForeignKeyConstraint(
            ["flow_id"], ["approval_flows.id"],
            name="fk_approval_flow_steps_flow_id_approval_flows", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("flow_id", "step_order", name="uq_approval_flow_steps_flow_order"),
    )
    op.create_index("ix_approval_flow_steps_flow_id", "approval_flow_steps", ["flow_id"])

    # --- approval_instances (FK -> modules, approval_flows) ---
    op.create_table(
        "approval_instances",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("module_id", sa.Integer(), nullable=False),
        sa.Column("request_id", sa.String(255), nullable=False),
        sa.Column("flow_id", sa.Integer(), nullable=False),
        sa.Column("flow_snapshot", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("current_step_order", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("current_approver_id", sa.String(255), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_by", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.Column("step_entered_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column("due_at", sa.DateTime(), nullable=True),
        sa.Column("decided_at", sa.DateTime(), nullable=True),
        sa.Column("is_halted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("halted_reason", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_approval_instances"),
        sa.ForeignKeyConstraint(["module_id"], ["modules.id"], name="fk_approval_instances_module_id_modules"),
        sa.ForeignKeyConstraint(
            ["flow_id"], ["approval_flows.id"], name="fk_approval_instances_flow_id_approval_flows",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'cancelled', 'expired')",
            name="ck_approval_instances_status",
        ),
        sa.CheckConstraint("current_step_order >= 1", name="ck_approval_instances_step_order"),
    )
    op.create_index("ix_approval_instances_module_id", "approval_instances", ["module_id"])
    op.create_index("ix_approval_instances_request_id", "approval_instances", ["request_id"])
    op.create_index("ix_approval_instances_flow_id", "approval_instances", ["flow_id"])
    op.create_index("ix_approval_instances_status", "approval_instances", ["status"])
    op.create_index("ix_approval_instances_created_by", "approval_instances", ["created_by"])
    op.create_index("ix_approval_instances_created_at", "approval_instances", ["created_at"])
    op.create_index("ix_approval_instances_due_at", "approval_instances", ["due_at"])

    # --- approval_instance_approvers (FK -> approval_instances) ---
    op.create_table(
        "approval_instance_approvers",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("instance_id", sa.Uuid(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.String(255), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_instance_approvers"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["approval_instances.id"],
            name="fk_approval_instance_approvers_instance_id_approval_instances", ondelete="CASCADE",
        ),
        sa.UniqueConstraint("instance_id", "step_order", "user_id", name="uq_instance_step_approver"),
    )
    op.create_index(
        "ix_approval_instance_approvers_instance_id", "approval_instance_approvers", ["instance_id"]
    )
    op.create_index("ix_approval_instance_approvers_user_id", "approval_instance_approvers", ["user_id"])

    # --- approval_decisions (FK -> approval_instances) ---
    op.create_table(
        "approval_decisions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("instance_id", sa.Uuid(), nullable=False),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("approver_id", sa.String(255), nullable=True),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("from_status", sa.String(20), nullable=False),
        sa.Column("to_status", sa.String(20), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_approval_decisions"),
        sa.ForeignKeyConstraint(
            ["instance_id"], ["approval_instances.id"],
            name="fk_approval_decisions_instance_id_approval_instances",
        ),
        sa.UniqueConstraint("instance_id", "sequence", name="uq_approval_decisions_sequence"),
    )
    op.create_index("ix_approval_decisions_instance_id", "approval_decisions", ["instance_id"])
    op.create_index("ix_approval_decisions_created_at", "approval_decisions", ["created_at"])

    if op.get_bind().dialect.name != "postgresql":
        return

    # Decision log entries can be appended, never changed or removed
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_approval_decision_change()
        RETURNS TRIGGER AS $trigger$
        BEGIN
            RAISE EXCEPTION 'Approval decisions are immutable. Record ID: %', OLD.id;
        END;
        $trigger$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER approval_decisions_prevent_update
        BEFORE UPDATE ON approval_decisions
        FOR EACH ROW
        EXECUTE FUNCTION prevent_approval_decision_change();
    """)
    op.execute("""
        CREATE TRIGGER approval_decisions_prevent_delete
        BEFORE DELETE ON approval_decisions
        FOR EACH ROW
        EXECUTE FUNCTION prevent_approval_decision_change();
    """)


def downgrade() -> None:
    """Drop all tables."""
    if op.get_bind().dialect.name == "postgresql":
        op.execute("DROP TRIGGER IF EXISTS approval_decisions_prevent_update ON approval_decisions;")
        op.execute("DROP TRIGGER IF EXISTS approval_decisions_prevent_delete ON approval_decisions;")
        op.execute("DROP FUNCTION IF EXISTS prevent_approval_decision_change();")

    op.drop_table("approval_decisions")
    op.drop_table("approval_instance_approvers")
    op.drop_table("approval_instances")
    op.drop_table("approval_flow_steps")
    op.drop_table("approval_flow_rules")
    op.drop_table("approval_flows")
    op.drop_table("modules")
