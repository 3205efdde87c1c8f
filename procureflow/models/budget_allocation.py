"""
Budget allocation model.

One row per allocation Finance lands against a project waiting in
``pending_budget_allocation``. Rows are never edited after creation.
"""

from datetime import datetime, timezone

from procureflow.models import db


class BudgetAllocation(db.Model):
    __tablename__ = "budget_allocations"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer, db.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    allocated_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    allocated_amount = db.Column(db.Float, nullable=False, default=0.0)
    previous_budget = db.Column(db.Float, nullable=False, default=0.0)
    new_budget = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.String(20), nullable=False, default="allocated")
    notes = db.Column(db.Text, nullable=True)
    allocated_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "project_id": self.project_id,
            "allocated_by_id": self.allocated_by_id,
            "allocated_amount": self.allocated_amount,
            "previous_budget": self.previous_budget,
            "new_budget": self.new_budget,
            "status": self.status,
            "notes": self.notes,
            "allocated_at": self.allocated_at.isoformat() if self.allocated_at else None,
        }
