from sqlalchemy import func

from parkwise import db
from parkwise.models import (Booking, ParkingCentre, ParkingSlot, ParkingZone, Payment, Staff,
                             User, Vehicle)
from parkwise.services.slots import slot_registry


def _revenue(query):
    total = query.with_entities(func.coalesce(func.sum(Payment.amount), 0)).scalar()
    return float(total or 0)


def _booking_counts(query):
    counts = dict(query.with_entities(Booking.status, func.count(Booking.id)).group_by(Booking.status).all())
    return {status: counts.get(status, 0) for status in ('pending', 'active', 'completed', 'cancelled')}


def admin_summary():
    slots = dict(
        db.session.query(ParkingSlot.status, func.count(ParkingSlot.id)).group_by(ParkingSlot.status).all()
    )
    return {
        'centres': ParkingCentre.query.count(),
        'users': User.query.filter(User.role == 'user').count(),
        'vehicles': Vehicle.query.count(),
        'slots': {
            'total': sum(slots.values()),
            'available': slots.get('available', 0),
            'occupied': slots.get('occupied', 0),
            'reserved': slots.get('reserved', 0),
        },
        'bookings': _booking_counts(Booking.query),
        'revenue': _revenue(Payment.query.filter(Payment.payment_status == 'completed')),
    }


def centre_summary(centre_id, include_revenue=False):
    bookings = Booking.query.join(ParkingSlot).join(ParkingZone).filter(ParkingZone.centre_id == centre_id)
    summary = {
        'centre_id': centre_id,
        'slots': slot_registry.centre_stats(centre_id),
        'bookings': _booking_counts(bookings),
        'staff': Staff.query.filter_by(centre_id=centre_id).count(),
    }
    if include_revenue:
        summary['revenue'] = _revenue(
            Payment.query.join(Booking).join(ParkingSlot).join(ParkingZone)
            .filter(ParkingZone.centre_id == centre_id, Payment.payment_status == 'completed')
        )
    return summary
