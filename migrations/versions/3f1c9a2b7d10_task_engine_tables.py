"""task_engine_tables

Creates the task / checklist approval engine tables:
  - users, projects, project_responsibles
  - tasks, task_members
  - task_deliveries            — task-level deliveries
  - checklist_item_deliveries  — one row per (task, item, sub-item) key
  - stock_items, stock_allocations
  - notifications

Tables created conditionally (IF NOT EXISTS semantics) to support idempotent
execution against databases that already received these tables via
db.create_all() in a development environment.

Revision ID: 3f1c9a2b7d10
Revises:
Create Date: 2026-10-19 09:12:40.118204
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = '3f1c9a2b7d10'
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
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("email", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=30), nullable=False,
                      server_default="COLABORADOR",
                      comment="DIRETOR | GM | SUPERVISOR | COMPRADOR | EXECUTOR | COLABORADOR"),
            sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("email"),
        )
        op.create_index("ix_users_role", "users", ["role"])

    # ── Projects ──────────────────────────────────────────────────────────
    if "projects" not in existing:
        op.create_table(
            "projects",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("summary", sa.Text(), nullable=True),
            sa.Column("objective", sa.Text(), nullable=True),
            sa.Column("total_value", sa.Float(), nullable=False, server_default="0"),
            sa.Column("insumos_value", sa.Float(), nullable=False, server_default="0",
                      comment="Derived: sum of the tasks' insumos_value"),
            sa.Column("status", sa.String(length=20), nullable=False,
                      server_default="EM_ANDAMENTO", comment="EM_ANDAMENTO | FINALIZADO"),
            sa.Column("supervisor_id", sa.Integer(), nullable=True),
            sa.Column("finalized_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["supervisor_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_projects_supervisor_id", "projects", ["supervisor_id"])

    if "project_responsibles" not in existing:
        op.create_table(
            "project_responsibles",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("project_id", "user_id", name="uq_project_responsible"),
        )
        op.create_index("ix_project_responsibles_user", "project_responsibles", ["user_id"])

    # ── Tasks ─────────────────────────────────────────────────────────────
    if "tasks" not in existing:
        op.create_table(
            "tasks",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=120), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("executor_id", sa.Integer(), nullable=False),
            sa.Column("approver_id", sa.Integer(), nullable=True,
                      comment="Optional responsible reviewer (responsavel)"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDENTE",
                      comment="PENDENTE | EM_ANDAMENTO | EM_ANALISE | APROVADA | REPROVADA"),
            sa.Column("started", sa.Boolean(), nullable=False, server_default=sa.false(),
                      comment="iniciada"),
            sa.Column("start_date", sa.Date(), nullable=True),
            sa.Column("end_date", sa.Date(), nullable=True),
            sa.Column("insumos_value", sa.Float(), nullable=False, server_default="0"),
            sa.Column("checklist_json", sa.JSON(), nullable=True),
            sa.Column("checklist_version", sa.Integer(), nullable=False, server_default="1",
                      comment="Schema version of checklist_json (see models.checklist)"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["executor_id"], ["users.id"], ondelete="RESTRICT"),
            sa.ForeignKeyConstraint(["approver_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_tasks_project_id", "tasks", ["project_id"])
        op.create_index("ix_tasks_executor_id", "tasks", ["executor_id"])

    if "task_members" not in existing:
        op.create_table(
            "task_members",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("task_id", "user_id", name="uq_task_member"),
        )
        op.create_index("ix_task_members_user", "task_members", ["user_id"])

    # ── Deliveries ────────────────────────────────────────────────────────
    if "task_deliveries" not in existing:
        op.create_table(
            "task_deliveries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="EM_ANALISE",
                      comment="EM_ANALISE | APROVADA | RECUSADA"),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("image_url", sa.Text(), nullable=True),
            sa.Column("submitted_by_id", sa.Integer(), nullable=True),
            sa.Column("reviewed_by_id", sa.Integer(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["submitted_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["reviewed_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_task_deliveries_task_id", "task_deliveries", ["task_id"])

    if "checklist_item_deliveries" not in existing:
        op.create_table(
            "checklist_item_deliveries",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("task_id", sa.Integer(), nullable=False),
            sa.Column("checklist_index", sa.Integer(), nullable=False),
            sa.Column("subitem_index", sa.Integer(), nullable=False, server_default="-1"),
            sa.Column("item_uid", sa.String(length=64), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="EM_ANALISE",
                      comment="EM_ANALISE | APROVADO | REPROVADO"),
            sa.Column("description", sa.Text(), nullable=False),
            sa.Column("image_url", sa.Text(), nullable=True,
                      comment="First image, kept for older clients"),
            sa.Column("document_url", sa.Text(), nullable=True,
                      comment="First document, kept for older clients"),
            sa.Column("image_urls", sa.JSON(), nullable=True),
            sa.Column("document_urls", sa.JSON(), nullable=True),
            sa.Column("submitted_by_id", sa.Integer(), nullable=True),
            sa.Column("reviewed_by_id", sa.Integer(), nullable=True),
            sa.Column("comment", sa.Text(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=False),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["submitted_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["reviewed_by_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("task_id", "checklist_index", "subitem_index",
                                name="uq_checklist_delivery_key"),
        )
        op.create_index("ix_checklist_delivery_task", "checklist_item_deliveries", ["task_id"])

    # ── Stock ─────────────────────────────────────────────────────────────
    if "stock_items" not in existing:
        op.create_table(
            "stock_items",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("unit", sa.String(length=20), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False, server_default="0",
                      comment="Total quantity on hand"),
            sa.Column("unit_value", sa.Float(), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.PrimaryKeyConstraint("id"),
        )

    if "stock_allocations" not in existing:
        op.create_table(
            "stock_allocations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("stock_item_id", sa.Integer(), nullable=False),
            sa.Column("project_id", sa.Integer(), nullable=True),
            sa.Column("task_id", sa.Integer(), nullable=True),
            sa.Column("user_id", sa.Integer(), nullable=True),
            sa.Column("quantity", sa.Integer(), nullable=False),
            sa.Column("allocated_at", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["stock_item_id"], ["stock_items.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["project_id"], ["projects.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["task_id"], ["tasks.id"], ondelete="SET NULL"),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_stock_allocations_stock_item_id", "stock_allocations", ["stock_item_id"])
        op.create_index("ix_stock_allocations_project_id", "stock_allocations", ["project_id"])
        op.create_index("ix_stock_allocations_task_id", "stock_allocations", ["task_id"])

    # ── Notifications ─────────────────────────────────────────────────────
    if "notifications" not in existing:
        op.create_table(
            "notifications",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("message", sa.Text(), nullable=True),
            sa.Column("kind", sa.String(length=30), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=True, comment="task/project/..."),
            sa.Column("entity_id", sa.Integer(), nullable=True),
            sa.Column("is_read", sa.Boolean(), nullable=True),
            sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_notifications_user_id", "notifications", ["user_id"])


def downgrade():
    for table in (
        "notifications",
        "stock_allocations",
        "stock_items",
        "checklist_item_deliveries",
        "task_deliveries",
        "task_members",
        "tasks",
        "project_responsibles",
        "projects",
        "users",
    ):
        op.drop_table(table)
