"""
Procurement Service.

Purchase order status changes. Delivery expands the order into inventory
through the workflow dispatcher.
"""

import logging
from datetime import datetime, timezone

from procureflow.core.exceptions import InvalidStateError
from procureflow.models.procurement import Procurement, validate_procurement_transition
from procureflow.services.helpers.lookups import get_or_404
from procureflow.services.workflow_triggers import create_inventory_from_procurement

logger = logging.getLogger(__name__)


def mark_procurement_delivered(procurement_id, user_id=None):
    """
    Mark a purchase order delivered and create one inventory record per line.

    Returns:
        (procurement, inventory records)
    """
    po = get_or_404(Procurement, procurement_id)
    if not validate_procurement_transition(po.status, "delivered"):
        raise InvalidStateError(
            f"Purchase order {po.po_number} cannot be delivered from {po.status!r}",
            current_status=po.status,
        )
    po.status = "delivered"
    po.delivered_at = datetime.now(timezone.utc)
    po.delivered_by_id = user_id
    logger.info("Purchase order %s delivered", po.po_number, extra={"project_id": po.project_id})

    records = create_inventory_from_procurement(po, user_id)
    return po, records
