from datetime import datetime, timedelta
from typing import List, Optional
from sqlalchemy.orm import Session, joinedload

from models.delivery import DeliveryPersonnel, DeliveryZone
from models.order import Order
from core.exceptions import ResourceNotFoundError

class ZoneMatcher:
    """Finds couriers eligible for an order.

    Two orderings are in use: assignment listings favour higher-rated,
    less-burdened couriers (rating desc, total_deliveries asc); zone browsing
    shows the most experienced first (rating desc, total_deliveries desc).
    """

    def __init__(self, db: Session):
        self.db = db

    def _eligible(self):
        return (
            self.db.query(DeliveryPersonnel)
            .options(joinedload(DeliveryPersonnel.user))
            .filter(
                DeliveryPersonnel.is_available == True,
                DeliveryPersonnel.is_verified == True
            )
        )

    def candidates_for_zone(self, zone_id: Optional[int]) -> List[DeliveryPersonnel]:
        query = self._eligible()
        # No zone on the order: every available courier is a candidate
        if zone_id is not None:
            query = query.filter(DeliveryPersonnel.zone_id == zone_id)
        return query.order_by(
            DeliveryPersonnel.rating.desc(),
            DeliveryPersonnel.total_deliveries.asc()
        ).all()

    def candidates_for_order(self, order: Order) -> List[DeliveryPersonnel]:
        return self.candidates_for_zone(order.delivery_zone_id)

    def available_personnel(self) -> List[DeliveryPersonnel]:
        return self.candidates_for_zone(None)

    def browse_zone(self, zone_id: int) -> List[DeliveryPersonnel]:
        return (
            self._eligible()
            .filter(DeliveryPersonnel.zone_id == zone_id)
            .order_by(
                DeliveryPersonnel.rating.desc(),
                DeliveryPersonnel.total_deliveries.desc()
            )
            .all()
        )

    def active_zones(self) -> List[DeliveryZone]:
        return (
            self.db.query(DeliveryZone)
            .filter(DeliveryZone.is_active == True)
            .order_by(DeliveryZone.delivery_fee.asc())
            .all()
        )

    def get_zone(self, zone_id: int) -> Optional[DeliveryZone]:
        return self.db.query(DeliveryZone).filter(DeliveryZone.id == zone_id).first()

    def quote(self, zone_id: int) -> dict:
        zone = self.get_zone(zone_id)
        if not zone or not zone.is_active:
            raise ResourceNotFoundError("Delivery zone", zone_id)
        return {
            "zone_id": zone.id,
            "zone_name": zone.name,
            "delivery_fee": str(zone.delivery_fee),
            "estimated_delivery_hours": zone.estimated_delivery_hours,
            "estimated_delivery_date": (datetime.utcnow() + timedelta(hours=zone.estimated_delivery_hours)).isoformat()
        }
