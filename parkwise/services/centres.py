import logging
from decimal import Decimal, InvalidOperation

from parkwise import db, feed
from parkwise.errors import ConflictError, ValidationError
from parkwise.models import (SLOT_STATUSES, VEHICLE_TYPES, ParkingCentre, ParkingSlot,
                             ParkingZone)
from parkwise.services import commit, get_or_raise
from parkwise.services.bookings import orchestrator

logger = logging.getLogger(__name__)


def _rate(value):
    try:
        rate = Decimal(str(value))
    except (InvalidOperation, TypeError):
        raise ValidationError('Hourly rate must be a number.') from None
    if rate <= 0:
        raise ValidationError('Hourly rate must be positive.')
    return rate


def list_centres():
    return ParkingCentre.query.order_by(ParkingCentre.name).all()


def zones_of(centre_id):
    get_or_raise(ParkingCentre, centre_id, 'Parking centre')
    return ParkingZone.query.filter_by(centre_id=centre_id).order_by(ParkingZone.zone_name).all()


def slots_of(zone_id):
    get_or_raise(ParkingZone, zone_id, 'Parking zone')
    return ParkingSlot.query.filter_by(zone_id=zone_id).order_by(ParkingSlot.slot_number).all()


def create_centre(name, address, city, pincode, total_capacity, state='', operating_hours='24/7',
                  latitude=None, longitude=None):
    if not (name and address and city and pincode):
        raise ValidationError('Name, address, city and pincode are required.')
    if total_capacity is None or int(total_capacity) < 0:
        raise ValidationError('Capacity cannot be negative.')
    if ParkingCentre.query.filter_by(name=name).first():
        raise ConflictError(f'A centre named {name!r} already exists.')
    centre = ParkingCentre(
        name=name, address=address, city=city, state=state or '', pincode=pincode,
        operating_hours=operating_hours or '24/7', total_capacity=int(total_capacity),
        latitude=latitude, longitude=longitude,
    )
    db.session.add(centre)
    commit('create parking centre')
    logger.info('Centre %s created with capacity %s', centre.name, centre.total_capacity)
    return centre


def _zoned_slots(centre):
    return sum(zone.total_slots for zone in centre.zones)


def create_zone(centre_id, zone_name, zone_type, floor_number=None):
    centre = get_or_raise(ParkingCentre, centre_id, 'Parking centre')
    if not (zone_name and zone_type):
        raise ValidationError('Zone name and type are required.')
    zone = ParkingZone(centre_id=centre.id, zone_name=zone_name, zone_type=zone_type,
                       floor_number=floor_number, total_slots=0)
    db.session.add(zone)
    commit('create parking zone')
    return zone


def add_slots(zone_id, count, vehicle_type, hourly_rate, prefix=None):
    """Add ``count`` numbered slots to a zone, keeping the centre within capacity."""
    zone = get_or_raise(ParkingZone, zone_id, 'Parking zone')
    if vehicle_type not in VEHICLE_TYPES:
        raise ValidationError(f'Unknown vehicle type {vehicle_type!r}.')
    if count is None or int(count) < 1:
        raise ValidationError('Add at least one slot.')
    count = int(count)
    rate = _rate(hourly_rate)

    centre = zone.centre
    if _zoned_slots(centre) + count > centre.total_capacity:
        raise ValidationError(
            f'{centre.name} has room for {centre.total_capacity - _zoned_slots(centre)} more slots.')

    prefix = prefix or zone.zone_name.split()[-1][:1].upper()
    existing = len(zone.slots)
    slots = []
    for i in range(existing + 1, existing + count + 1):
        slot = ParkingSlot(zone_id=zone.id, slot_number=f'{prefix}-{i:02d}',
                           vehicle_type=vehicle_type, hourly_rate=rate, status='available')
        db.session.add(slot)
        slots.append(slot)
    zone.total_slots = existing + count
    commit('add parking slots')
    logger.info('Added %d %s slots to zone %s', count, vehicle_type, zone.zone_name)
    return slots


def update_slot(slot_id, status=None, hourly_rate=None):
    slot = get_or_raise(ParkingSlot, slot_id, 'Parking slot')
    if status is not None:
        if status not in SLOT_STATUSES:
            raise ValidationError(f'Invalid slot status {status!r}.')
        if status != slot.status and orchestrator.open_for_slot(slot.id):
            raise ConflictError('Slot status follows its open booking; change the booking instead.')
        slot.status = status
    if hourly_rate is not None:
        slot.hourly_rate = _rate(hourly_rate)
    commit('update parking slot')
    feed.publish('parking_slots', 'UPDATE', slot.as_dict())
    return slot


def delete_centre(centre_id):
    centre = get_or_raise(ParkingCentre, centre_id, 'Parking centre')
    if any(slot.status == 'occupied' for zone in centre.zones for slot in zone.slots):
        raise ConflictError('Cannot delete a centre with occupied slots.')
    if any(booking for zone in centre.zones for slot in zone.slots for booking in slot.bookings):
        raise ConflictError('Cannot delete a centre with booking history.')
    db.session.delete(centre)
    commit('delete parking centre')
    logger.info('Centre %s deleted', centre.name)
