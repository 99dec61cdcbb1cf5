"""checklist_workflow_initial

Creates the onboarding checklist schema:
  - users                        — directory records (role, department, team, supervisor)
  - checklist_templates          — reusable ordered checklists
  - checklist_items              — template steps, unique (template_id, order_index)
  - checklist_auto_assign_rules  — one rule per template
  - checklist_assignments        — template ↔ user binding, partial unique on open rows
  - checklist_progress_items     — per (assignment, item) completion + verification
  - notifications                — in-app inbox

Tables created conditionally (IF NOT EXISTS semantics) so the migration can
run against a database that already received them via db.create_all().

Revision ID: 5e1c0a7b9d21
Revises:
Create Date: 2026-10-19 09:12:44.318205
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '5e1c0a7b9d21'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    inspector = sa_inspect(bind)
    existing = set(inspector.get_table_names())

    # ── Users ─────────────────────────────────────────────────────────────
    if "users" not in existing:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("full_name", sa.String(length=200), nullable=True),
            sa.Column(
                "role", sa.String(length=20), nullable=False, server_default="employee",
                comment="employee | supervisor | manager | hr | admin",
            ),
            sa.Column("department", sa.String(length=100), nullable=True),
            sa.Column("team_id", sa.String(length=64), nullable=True),
            sa.Column("supervisor_id", sa.Integer(), nullable=True),
            sa.Column("program_type", sa.String(length=50), nullable=True),
            sa.Column("stage", sa.String(length=20), nullable=True),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["supervisor_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_department", "users", ["department"])
        op.create_index("ix_users_team_id", "users", ["team_id"])
        op.create_index("ix_users_supervisor_id", "users", ["supervisor_id"])

    # ── ChecklistTemplate ─────────────────────────────────────────────────
    if "checklist_templates" not in existing:
        op.create_table(
            "checklist_templates",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("program_type", sa.String(length=50), nullable=False, server_default="all"),
            sa.Column(
                "stage", sa.String(length=20), nullable=False, server_default="prepare",
                comment="prepare | orient | land | integrate | excel",
            ),
            sa.Column("auto_assign", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("requires_verification", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_by", sa.Integer(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["created_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_templates_program_type", "checklist_templates", ["program_type"])
        op.create_index("ix_checklist_templates_stage", "checklist_templates", ["stage"])

    # ── ChecklistItem ─────────────────────────────────────────────────────
    if "checklist_items" not in existing:
        op.create_table(
            "checklist_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=255), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("is_required", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("order_index", sa.Integer(), nullable=False),
            sa.Column("phase", sa.String(length=20), nullable=False, server_default="prepare"),
            sa.Column(
                "controlled_by", sa.String(length=20), nullable=False, server_default="employee",
                comment="employee | hr | both",
            ),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("template_id", "order_index", name="uq_checklist_items_template_order"),
        )
        op.create_index("ix_checklist_items_template_id", "checklist_items", ["template_id"])

    # ── AutoAssignRule ────────────────────────────────────────────────────
    if "checklist_auto_assign_rules" not in existing:
        op.create_table(
            "checklist_auto_assign_rules",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("departments", sa.JSON(), nullable=False),
            sa.Column("program_types", sa.JSON(), nullable=False),
            sa.Column("stages", sa.JSON(), nullable=False),
            sa.Column("due_in_days", sa.Integer(), nullable=True),
            sa.Column("auto_notify", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("template_id"),
        )

    # ── ChecklistAssignment ───────────────────────────────────────────────
    if "checklist_assignments" not in existing:
        op.create_table(
            "checklist_assignments",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("template_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column(
                "assigned_by", sa.Integer(), nullable=True,
                comment="NULL when created by the auto-assignment matcher",
            ),
            sa.Column("due_date", sa.Date(), nullable=True),
            sa.Column("is_auto_assigned", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("is_open", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["template_id"], ["checklist_templates.id"]),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["assigned_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_checklist_assignments_template_id", "checklist_assignments", ["template_id"])
        op.create_index("ix_checklist_assignments_user_id", "checklist_assignments", ["user_id"])
        op.create_index(
            "uq_checklist_assignments_open_user_template",
            "checklist_assignments",
            ["user_id", "template_id"],
            unique=True,
            postgresql_where=sa.text("is_open IS TRUE"),
            sqlite_where=sa.text("is_open = 1"),
        )

    # ── ChecklistProgressItem ─────────────────────────────────────────────
    if "checklist_progress_items" not in existing:
        op.create_table(
            "checklist_progress_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("assignment_id", sa.Integer(), nullable=False),
            sa.Column("item_id", sa.Integer(), nullable=False),
            sa.Column("is_completed", sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("completed_by", sa.Integer(), nullable=True),
            sa.Column("notes", sa.Text(), nullable=True),
            sa.Column(
                "verification_status", sa.String(length=20), nullable=False,
                server_default="pending", comment="pending | approved | rejected",
            ),
            sa.Column("verified_by", sa.Integer(), nullable=True),
            sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("verification_notes", sa.Text(), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["assignment_id"], ["checklist_assignments.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["item_id"], ["checklist_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["completed_by"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["verified_by"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("assignment_id", "item_id", name="uq_progress_assignment_item"),
        )
        op.create_index(
            "ix_checklist_progress_items_assignment_id", "checklist_progress_items", ["assignment_id"],
        )
        op.create_index("ix_checklist_progress_items_item_id", "checklist_progress_items", ["item_id"])

    # ── Notification ──────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("recipient_id", sa.Integer(), nullable=False),
            sa.Column("kind", sa.String(length=40), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column(
                "entity_type", sa.String(length=30), nullable=True,
                comment="checklist_assignment/checklist_progress",
            ),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("payload", sa.JSON(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["recipient_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_recipient_id", "notifications", ["recipient_id"])


def downgrade():
    op.drop_index("ix_notifications_recipient_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_checklist_progress_items_item_id", table_name="checklist_progress_items")
    op.drop_index("ix_checklist_progress_items_assignment_id", table_name="checklist_progress_items")
    op.drop_table("checklist_progress_items")
    op.drop_index("uq_checklist_assignments_open_user_template", table_name="checklist_assignments")
    op.drop_index("ix_checklist_assignments_user_id", table_name="checklist_assignments")
    op.drop_index("ix_checklist_assignments_template_id", table_name="checklist_assignments")
    op.drop_table("checklist_assignments")
    op.drop_table("checklist_auto_assign_rules")
    op.drop_index("ix_checklist_items_template_id", table_name="checklist_items")
    op.drop_table("checklist_items")
    op.drop_index("ix_checklist_templates_stage", table_name="checklist_templates")
    op.drop_index("ix_checklist_templates_program_type", table_name="checklist_templates")
    op.drop_table("checklist_templates")
    op.drop_index("ix_users_supervisor_id", table_name="users")
    op.drop_index("ix_users_team_id", table_name="users")
    op.drop_index("ix_users_department", table_name="users")
    op.drop_table("users")
