import logging

from sqlalchemy import func

from parkwise import db
from parkwise.errors import NotFoundError, ValidationError
from parkwise.models import SLOT_STATUSES, VEHICLE_TYPES, ParkingSlot, ParkingZone

logger = logging.getLogger(__name__)


class SlotRegistry:
    """Occupancy state of every slot, per centre and zone.

    Status writes are staged on the current session and committed by the
    caller together with the booking change that caused them.
    """

    def list_available(self, centre_id, vehicle_type=None):
        query = (
            ParkingSlot.query
            .join(ParkingZone)
            .filter(ParkingZone.centre_id == centre_id, ParkingSlot.status == 'available')
        )
        if vehicle_type:
            if vehicle_type not in VEHICLE_TYPES:
                raise ValidationError(f'Unknown vehicle type {vehicle_type!r}')
            query = query.filter(ParkingSlot.vehicle_type == vehicle_type)
        return query.order_by(ParkingZone.zone_name, ParkingSlot.slot_number).all()

    def get(self, slot_id):
        slot = db.session.get(ParkingSlot, slot_id)
        if slot is None:
            raise NotFoundError(f'Parking slot {slot_id} not found')
        return slot

    def set_status(self, slot_id, status):
        if status not in SLOT_STATUSES:
            raise ValidationError(f'Invalid slot status {status!r}')
        slot = self.get(slot_id)
        if slot.status != status:
            logger.debug('Slot %s: %s -> %s', slot.id, slot.status, status)
            slot.status = status
        return slot

    def claim(self, slot_id):
        """Atomically flip an available slot to occupied.

        Returns False when the slot was no longer available, i.e. another
        booking got there first.
        """
        result = db.session.execute(
            db.update(ParkingSlot)
            .where(ParkingSlot.id == slot_id, ParkingSlot.status == 'available')
            .values(status='occupied')
            .execution_options(synchronize_session=False)
        )
        db.session.get(ParkingSlot, slot_id, populate_existing=True)
        return result.rowcount == 1

    def release(self, slot_id):
        return self.set_status(slot_id, 'available')

    def centre_stats(self, centre_id):
        rows = (
            db.session.query(ParkingSlot.status, func.count(ParkingSlot.id))
            .join(ParkingZone)
            .filter(ParkingZone.centre_id == centre_id)
            .group_by(ParkingSlot.status)
            .all()
        )
        stats = {status: 0 for status in SLOT_STATUSES}
        stats.update(dict(rows))
        stats['total'] = sum(stats[status] for status in SLOT_STATUSES)
        return stats


slot_registry = SlotRegistry()
