"""
Task domain models — tasks ("etapas"), their deliveries and per-item
checklist deliveries.

Models:
    - Task: unit of work inside a project, with an ordered checklist
    - TaskMember: team member link (executor's helpers)
    - TaskDelivery: task-level evidence submitted for review
    - ChecklistItemDelivery: evidence for a single checklist item / sub-item

Status vocabularies are kept as the upper-case Portuguese values the field
teams and existing integrations already use.
"""

from datetime import datetime, timezone

from fieldops.models import db
from fieldops.models.checklist import (
    CHECKLIST_SCHEMA_VERSION,
    dump_checklist,
    migrate_checklist,
)

# ── Constants ────────────────────────────────────────────────────────────────

TASK_PENDING = "PENDENTE"
TASK_IN_PROGRESS = "EM_ANDAMENTO"
TASK_IN_REVIEW = "EM_ANALISE"
TASK_APPROVED = "APROVADA"
TASK_REJECTED = "REPROVADA"

TASK_STATUSES = frozenset({
    TASK_PENDING, TASK_IN_PROGRESS, TASK_IN_REVIEW, TASK_APPROVED, TASK_REJECTED,
})

# Statuses shown in "my tasks" work queues
ACTIVE_TASK_STATUSES = (TASK_PENDING, TASK_IN_PROGRESS, TASK_IN_REVIEW, TASK_REJECTED)

DELIVERY_IN_REVIEW = "EM_ANALISE"
DELIVERY_APPROVED = "APROVADA"
DELIVERY_REFUSED = "RECUSADA"
DELIVERY_STATUSES = frozenset({DELIVERY_IN_REVIEW, DELIVERY_APPROVED, DELIVERY_REFUSED})

ITEM_IN_REVIEW = "EM_ANALISE"
ITEM_APPROVED = "APROVADO"
ITEM_REJECTED = "REPROVADO"
ITEM_REVIEW_DECISIONS = frozenset({ITEM_APPROVED, ITEM_REJECTED})

# Sentinel stored in subitem_index for deliveries of the item itself, so the
# unique key has no NULL member on any backend.
WHOLE_ITEM = -1


def _iso(value):
    return value.isoformat() if value else None


class TaskMember(db.Model):
    """Team member attached to a task (can work on it like the executor)."""

    __tablename__ = "task_members"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )

    __table_args__ = (
        db.UniqueConstraint("task_id", "user_id", name="uq_task_member"),
        db.Index("ix_task_members_user", "user_id"),
    )

    user = db.relationship("User")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "user": self.user.to_dict() if self.user else None,
        }


class Task(db.Model):
    """
    Task ("etapa") — exclusively owned by one project.

    Lifecycle:
        PENDENTE ↔ EM_ANDAMENTO      (checklist replacement)
        PENDENTE | EM_ANDAMENTO | REPROVADA → EM_ANALISE   (delivery submitted)
        EM_ANALISE → APROVADA | REPROVADA                  (delivery reviewed)
    """

    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text, nullable=True)
    executor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True,
    )
    approver_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
        comment="Optional responsible reviewer (responsavel)",
    )
    status = db.Column(
        db.String(20), nullable=False, default=TASK_PENDING,
        comment="PENDENTE | EM_ANDAMENTO | EM_ANALISE | APROVADA | REPROVADA",
    )
    started = db.Column(db.Boolean, nullable=False, default=False, comment="iniciada")
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    insumos_value = db.Column(db.Float, nullable=False, default=0.0)

    checklist_json = db.Column(db.JSON, nullable=True)
    checklist_version = db.Column(
        db.Integer, nullable=False, default=CHECKLIST_SCHEMA_VERSION,
        comment="Schema version of checklist_json (see models.checklist)",
    )

    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    project = db.relationship("Project", back_populates="tasks")
    executor = db.relationship("User", foreign_keys=[executor_id])
    approver = db.relationship("User", foreign_keys=[approver_id])
    members = db.relationship(
        "TaskMember", cascade="all, delete-orphan", lazy="selectin",
    )
    deliveries = db.relationship(
        "TaskDelivery", back_populates="task", cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (TaskDelivery.submitted_at.desc(), TaskDelivery.id.desc()),
    )
    checklist_deliveries = db.relationship(
        "ChecklistItemDelivery", back_populates="task", cascade="all, delete-orphan",
        passive_deletes=True,
        order_by=lambda: (ChecklistItemDelivery.checklist_index, ChecklistItemDelivery.subitem_index),
    )

    # ── Checklist access ─────────────────────────────────────────────────

    @property
    def checklist(self):
        """Current checklist as ``ChecklistItem`` objects (migrated on read)."""
        return migrate_checklist(self.checklist_json, self.checklist_version)

    def set_checklist(self, items):
        """Persist ``items`` in the current schema version."""
        self.checklist_json = dump_checklist(items)
        self.checklist_version = CHECKLIST_SCHEMA_VERSION

    @property
    def member_ids(self):
        return {m.user_id for m in self.members}

    def to_dict(self, include_deliveries=False):
        d = {
            "id": self.id,
            "project_id": self.project_id,
            "name": self.name,
            "description": self.description,
            "executor_id": self.executor_id,
            "executor": self.executor.to_dict() if self.executor else None,
            "approver_id": self.approver_id,
            "members": [m.to_dict() for m in self.members],
            "status": self.status,
            "started": self.started,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "insumos_value": self.insumos_value,
            "checklist": [item.to_dict() for item in self.checklist],
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_deliveries:
            d["deliveries"] = [e.to_dict() for e in self.deliveries]
            d["checklist_deliveries"] = [e.to_dict() for e in self.checklist_deliveries]
        return d

    def __repr__(self):
        return f"<Task {self.id}: {self.name} [{self.status}]>"


class TaskDelivery(db.Model):
    """Task-level delivery ("entrega"). At most one EM_ANALISE per task."""

    __tablename__ = "task_deliveries"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(
        db.String(20), nullable=False, default=DELIVERY_IN_REVIEW,
        comment="EM_ANALISE | APROVADA | RECUSADA",
    )
    description = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.Text, nullable=True)
    submitted_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    reviewed_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    comment = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    task = db.relationship("Task", back_populates="deliveries")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id])

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "status": self.status,
            "description": self.description,
            "image_url": self.image_url,
            "submitted_by_id": self.submitted_by_id,
            "reviewed_by_id": self.reviewed_by_id,
            "comment": self.comment,
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
        }


class ChecklistItemDelivery(db.Model):
    """
    Evidence + review state for one checklist key.

    Key: (task_id, checklist_index, subitem_index). ``subitem_index`` is
    ``WHOLE_ITEM`` (-1) when the delivery targets the item itself. There is
    never more than one row per key: resubmission overwrites the row.
    ``item_uid`` records which checklist entry the row belongs to, so the
    index can be remapped when the checklist is reordered.
    """

    __tablename__ = "checklist_item_deliveries"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
    )
    checklist_index = db.Column(db.Integer, nullable=False)
    subitem_index = db.Column(db.Integer, nullable=False, default=WHOLE_ITEM)
    item_uid = db.Column(db.String(64), nullable=True)

    status = db.Column(
        db.String(20), nullable=False, default=ITEM_IN_REVIEW,
        comment="EM_ANALISE | APROVADO | REPROVADO",
    )
    description = db.Column(db.Text, nullable=False)
    image_url = db.Column(db.Text, nullable=True, comment="First image, kept for older clients")
    document_url = db.Column(db.Text, nullable=True, comment="First document, kept for older clients")
    image_urls = db.Column(db.JSON, nullable=True)
    document_urls = db.Column(db.JSON, nullable=True)

    submitted_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    reviewed_by_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    comment = db.Column(db.Text, nullable=True)
    submitted_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )
    reviewed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    __table_args__ = (
        db.UniqueConstraint(
            "task_id", "checklist_index", "subitem_index", name="uq_checklist_delivery_key",
        ),
        db.Index("ix_checklist_delivery_task", "task_id"),
    )

    task = db.relationship("Task", back_populates="checklist_deliveries")
    submitted_by = db.relationship("User", foreign_keys=[submitted_by_id])
    reviewed_by = db.relationship("User", foreign_keys=[reviewed_by_id])

    @property
    def is_subitem(self):
        return self.subitem_index != WHOLE_ITEM

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "checklist_index": self.checklist_index,
            "subitem_index": self.subitem_index if self.is_subitem else None,
            "status": self.status,
            "description": self.description,
            "image_url": self.image_url,
            "document_url": self.document_url,
            "image_urls": self.image_urls or [],
            "document_urls": self.document_urls or [],
            "submitted_by_id": self.submitted_by_id,
            "reviewed_by_id": self.reviewed_by_id,
            "comment": self.comment,
            "submitted_at": _iso(self.submitted_at),
            "reviewed_at": _iso(self.reviewed_at),
        }
