"""Project domain model — the unit a supervisor signs off as finished."""

from datetime import datetime, timezone

from fieldops.models import db

# ── Constants ────────────────────────────────────────────────────────────────

PROJECT_STATUS_IN_PROGRESS = "EM_ANDAMENTO"
PROJECT_STATUS_FINISHED = "FINALIZADO"
PROJECT_STATUSES = frozenset({PROJECT_STATUS_IN_PROGRESS, PROJECT_STATUS_FINISHED})


class ProjectResponsible(db.Model):
    """User ↔ Project responsibility link."""

    __tablename__ = "project_responsibles"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )

    __table_args__ = (
        db.UniqueConstraint("project_id", "user_id", name="uq_project_responsible"),
        db.Index("ix_project_responsibles_user", "user_id"),
    )

    user = db.relationship("User")

    def to_dict(self):
        return {
            "user_id": self.user_id,
            "user": self.user.to_dict() if self.user else None,
        }


class Project(db.Model):
    """
    Construction / field-service project.

    ``status`` and ``insumos_value`` are derived from the project's tasks by
    the project status aggregator; only the explicit finalize action writes
    ``status`` directly.
    """

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    summary = db.Column(db.Text, nullable=True)
    objective = db.Column(db.Text, nullable=True)
    total_value = db.Column(db.Float, nullable=False, default=0.0)
    insumos_value = db.Column(
        db.Float, nullable=False, default=0.0,
        comment="Derived: sum of the tasks' insumos_value",
    )
    status = db.Column(
        db.String(20), nullable=False, default=PROJECT_STATUS_IN_PROGRESS,
        comment="EM_ANDAMENTO | FINALIZADO",
    )
    supervisor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    finalized_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    supervisor = db.relationship("User", foreign_keys=[supervisor_id])
    responsibles = db.relationship(
        "ProjectResponsible", cascade="all, delete-orphan", lazy="selectin",
    )
    tasks = db.relationship(
        "Task", back_populates="project", cascade="all, delete-orphan",
        passive_deletes=True, order_by="Task.id",
    )

    @property
    def responsible_ids(self):
        return {r.user_id for r in self.responsibles}

    def to_dict(self, include_tasks=False):
        d = {
            "id": self.id,
            "name": self.name,
            "summary": self.summary,
            "objective": self.objective,
            "total_value": self.total_value,
            "insumos_value": self.insumos_value,
            "status": self.status,
            "supervisor_id": self.supervisor_id,
            "supervisor": self.supervisor.to_dict() if self.supervisor else None,
            "responsibles": [r.to_dict() for r in self.responsibles],
            "finalized_at": self.finalized_at.isoformat() if self.finalized_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        if include_tasks:
            d["tasks"] = [t.to_dict() for t in self.tasks]
        return d

    def __repr__(self):
        return f"<Project {self.id}: {self.name} [{self.status}]>"
