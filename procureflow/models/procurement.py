"""
Purchase order models.

Models:
    - Procurement:      purchase order synthesized from a project (PO0001, PO0002, ...)
    - ProcurementItem:  line item, copied from the project's itemized requirements

Lifecycle:
    draft → pending → [issued →] delivered → paid
    (any non-terminal state) → cancelled
"""

from datetime import datetime, timezone

from procureflow.models import db

PROCUREMENT_TRANSITIONS = {
    "draft": ["pending", "cancelled"],
    "pending": ["issued", "delivered", "cancelled"],
    "issued": ["delivered", "cancelled"],
    "delivered": ["paid"],
    "paid": [],
    "cancelled": [],
}


def validate_procurement_transition(old_status, new_status):
    """Return True if the purchase order status transition is valid."""
    return new_status in PROCUREMENT_TRANSITIONS.get(old_status, [])


class Procurement(db.Model):
    __tablename__ = "procurements"

    id = db.Column(db.Integer, primary_key=True)
    po_number = db.Column(db.String(20), nullable=False, unique=True)
    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    category = db.Column(db.String(60), nullable=False, default="other")
    status = db.Column(db.String(20), nullable=False, default="pending")
    vendor_name = db.Column(db.String(200), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="NGN")
    subtotal = db.Column(db.Float, nullable=False, default=0.0)
    total_amount = db.Column(db.Float, nullable=False, default=0.0)

    project_id = db.Column(db.Integer, db.ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True)
    department_id = db.Column(db.Integer, db.ForeignKey("departments.id"), nullable=True)
    requested_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    delivered_at = db.Column(db.DateTime(timezone=True), nullable=True)
    delivered_by_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

    project = db.relationship("Project")
    items = db.relationship(
        "ProcurementItem", backref="procurement",
        cascade="all, delete-orphan", order_by="ProcurementItem.id",
    )

    def recalculate_totals(self):
        self.subtotal = sum(item.total_price or 0 for item in self.items)
        self.total_amount = self.subtotal

    def to_dict(self, include_items=True):
        d = {
            "id": self.id,
            "po_number": self.po_number,
            "title": self.title,
            "description": self.description,
            "category": self.category,
            "status": self.status,
            "vendor_name": self.vendor_name,
            "currency": self.currency,
            "subtotal": self.subtotal,
            "total_amount": self.total_amount,
            "project_id": self.project_id,
            "department_id": self.department_id,
            "requested_by_id": self.requested_by_id,
            "delivered_at": self.delivered_at.isoformat() if self.delivered_at else None,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
        if include_items:
            d["items"] = [i.to_dict() for i in self.items]
        return d

    def __repr__(self):
        return f"<Procurement {self.po_number}: {self.status}>"


class ProcurementItem(db.Model):
    __tablename__ = "procurement_items"

    id = db.Column(db.Integer, primary_key=True)
    procurement_id = db.Column(
        db.Integer, db.ForeignKey("procurements.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, default="")
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Float, nullable=False, default=0.0)
    total_price = db.Column(db.Float, nullable=False, default=0.0)
    category = db.Column(db.String(60), nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "quantity": self.quantity,
            "unit_price": self.unit_price,
            "total_price": self.total_price,
            "category": self.category,
        }
