"""Initial schema: companies, users, approval rules, expenses, approval ledger

Revision ID: 0001
Revises:
Create Date: 2026-10-19

Tables added:
- companies: Tenants
- users: Employees with their reporting line
- approval_rules / approval_rule_approvers: Rule configuration
- expenses: Claims and their workflow state
- approval_history: Append-only approval ledger
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
    """Create the workflow tables."""

    # --- companies ---
    op.create_table(
        "companies",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False, server_default="USD"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_companies"),
    )

    # --- users ---
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("role", sa.String(20), nullable=False, server_default="employee"),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_users_company_id"),
        sa.ForeignKeyConstraint(["manager_id"], ["users.id"], name="fk_users_manager_id", ondelete="SET NULL"),
        sa.CheckConstraint("role IN ('admin', 'manager', 'employee')", name="ck_users_role"),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_company_id", "users", ["company_id"])
    op.create_index("ix_users_manager_id", "users", ["manager_id"])

    # --- approval_rules ---
    op.create_table(
        "approval_rules",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("policy_kind", sa.String(20), nullable=False),
        sa.Column("percentage_threshold", sa.Integer(), nullable=True),
        sa.Column("requires_manager_approval", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_approval_rules"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_approval_rules_company_id"),
        sa.CheckConstraint(
            "policy_kind IN ('percentage', 'specific', 'hybrid')", name="ck_approval_rules_policy_kind"
        ),
        sa.CheckConstraint(
            "percentage_threshold IS NULL OR (percentage_threshold BETWEEN 1 AND 100)",
            name="ck_approval_rules_threshold_range",
        ),
    )
    op.create_index("ix_approval_rules_company_id", "approval_rules", ["company_id"])

    # --- approval_rule_approvers ---
    op.create_table(
        "approval_rule_approvers",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("approval_rule_id", sa.Uuid(), nullable=False),
        sa.Column("user_id", sa.Uuid(), nullable=False),
        sa.Column("sequence_order", sa.Integer(), nullable=False),
        sa.Column("is_auto_approve", sa.Boolean(), nullable=False, server_default="false"),
        sa.PrimaryKeyConstraint("id", name="pk_approval_rule_approvers"),
        sa.ForeignKeyConstraint(
            ["approval_rule_id"], ["approval_rules.id"],
            name="fk_approval_rule_approvers_rule_id", ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], name="fk_approval_rule_approvers_user_id"),
        sa.UniqueConstraint("approval_rule_id", "sequence_order", name="uq_rule_approver_sequence"),
    )
    op.create_index("ix_approval_rule_approvers_approval_rule_id", "approval_rule_approvers", ["approval_rule_id"])

    # --- expenses ---
    op.create_table(
        "expenses",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("company_id", sa.Uuid(), nullable=False),
        sa.Column("submitter_id", sa.Uuid(), nullable=False),
        sa.Column("approval_rule_id", sa.Uuid(), nullable=True),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency_code", sa.String(3), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("merchant_name", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("current_approval_step", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_expenses"),
        sa.ForeignKeyConstraint(["company_id"], ["companies.id"], name="fk_expenses_company_id"),
        sa.ForeignKeyConstraint(["submitter_id"], ["users.id"], name="fk_expenses_submitter_id"),
        sa.ForeignKeyConstraint(
            ["approval_rule_id"], ["approval_rules.id"],
            name="fk_expenses_approval_rule_id", ondelete="SET NULL",
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'in_review', 'approved', 'rejected')", name="ck_expenses_status"
        ),
        sa.CheckConstraint("current_approval_step >= 0", name="ck_expenses_step_non_negative"),
    )
    op.create_index("ix_expenses_company_id", "expenses", ["company_id"])
    op.create_index("ix_expenses_submitter_id", "expenses", ["submitter_id"])
    op.create_index("ix_expenses_status", "expenses", ["status"])
    op.create_index("ix_expenses_created_at", "expenses", ["created_at"])

    # --- approval_history ---
    op.create_table(
        "approval_history",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("expense_id", sa.Uuid(), nullable=False),
        sa.Column("approver_id", sa.Uuid(), nullable=False),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("step_number", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(), server_default=sa.text("now()")),
        sa.PrimaryKeyConstraint("id", name="pk_approval_history"),
        sa.ForeignKeyConstraint(
            ["expense_id"], ["expenses.id"], name="fk_approval_history_expense_id", ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(["approver_id"], ["users.id"], name="fk_approval_history_approver_id"),
        sa.CheckConstraint(
            "action IN ('pending', 'approved', 'rejected')", name="ck_approval_history_action"
        ),
    )
    op.create_index("ix_approval_history_expense_id", "approval_history", ["expense_id"])
    op.create_index("ix_approval_history_action", "approval_history", ["action"])
    op.create_index("ix_approval_history_created_at", "approval_history", ["created_at"])

    # Ledger rows are immutable once written
    op.execute("""
        CREATE OR REPLACE FUNCTION prevent_approval_history_modification()
        RETURNS TRIGGER AS $$
        BEGIN
            RAISE EXCEPTION 'approval_history is append-only';
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TRIGGER approval_history_append_only
        BEFORE UPDATE OR DELETE ON approval_history
        FOR EACH ROW EXECUTE FUNCTION prevent_approval_history_modification();
    """)


def downgrade() -> None:
    """Drop the workflow tables."""
    op.execute("DROP TRIGGER IF EXISTS approval_history_append_only ON approval_history")
    op.execute("DROP FUNCTION IF EXISTS prevent_approval_history_modification()")
    op.drop_table("approval_history")
    op.drop_table("expenses")
    op.drop_table("approval_rule_approvers")
    op.drop_table("approval_rules")
    op.drop_table("users")
    op.drop_table("companies")
