"""
Inventory model.

Records are created by the workflow dispatcher: one aggregate record per
project (``trigger_inventory_creation``) or one record per delivered purchase
order line (``create_inventory_from_procurement``). Codes are sequential:
INV0001, INV0002, ...
"""

from datetime import datetime, timezone

from procureflow.models import db

INVENTORY_STATUSES = {"pending_setup", "available", "in_use", "maintenance", "retired"}


class Inventory(db.Model):
    __tablename__ = "inventory"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(20), nullable=False, unique=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    type = db.Column(db.String(30), nullable=False, default="other",
                     comment="equipment | vehicle | property | furniture | electronics | other")
    category = db.Column(db.String(60), nullable=False, default="other")
    status = db.Column(db.String(20), nullable=False, default="pending_setup")
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_cost = db.Column(db.Float, nullable=False, default=0.0)
    total_value = db.Column(db.Float, nullable=False, default=0.0)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    procurement_id = db.Column(
        db.Integer, db.ForeignKey("procurements.id", ondelete="SET NULL"), nullable=True, index=True,
    )
    procurement_item_id = db.Column(
        db.Integer, db.ForeignKey("procurement_items.id", ondelete="SET NULL"), nullable=True,
    )
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    def to_dict(self):
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "type": self.type,
            "category": self.category,
            "status": self.status,
            "quantity": self.quantity,
            "unit_cost": self.unit_cost,
            "total_value": self.total_value,
            "project_id": self.project_id,
            "procurement_id": self.procurement_id,
            "department_id": self.department_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<Inventory {self.code}: {self.name[:40]}>"
