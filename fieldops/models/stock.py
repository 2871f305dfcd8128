"""
Stock domain models — the quantity ledger tasks draw insumos from.

Stock item and purchase-order administration is owned elsewhere; the task
engine only needs items (total quantity on hand) and allocations (quantity
reserved for a project / task / user).
"""

from datetime import datetime, timezone

from fieldops.models import db


class StockItem(db.Model):
    __tablename__ = "stock_items"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    unit = db.Column(db.String(20), nullable=True)
    quantity = db.Column(db.Integer, nullable=False, default=0, comment="Total quantity on hand")
    unit_value = db.Column(db.Float, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    allocations = db.relationship(
        "StockAllocation", back_populates="stock_item", cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "unit": self.unit,
            "quantity": self.quantity,
            "unit_value": self.unit_value,
        }


class StockAllocation(db.Model):
    """Quantity of a stock item reserved for one (project, task, user) target."""

    __tablename__ = "stock_allocations"

    id = db.Column(db.Integer, primary_key=True)
    stock_item_id = db.Column(
        db.Integer, db.ForeignKey("stock_items.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )
    quantity = db.Column(db.Integer, nullable=False)
    allocated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc),
    )

    stock_item = db.relationship("StockItem", back_populates="allocations")

    def to_dict(self):
        return {
            "id": self.id,
            "stock_item_id": self.stock_item_id,
            "project_id": self.project_id,
            "task_id": self.task_id,
            "user_id": self.user_id,
            "quantity": self.quantity,
            "allocated_at": self.allocated_at.isoformat() if self.allocated_at else None,
        }
