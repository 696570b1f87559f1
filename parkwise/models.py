from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin

from parkwise import db

SLOT_STATUSES = ('available', 'occupied', 'reserved')
BOOKING_STATUSES = ('pending', 'active', 'completed', 'cancelled')
OPEN_BOOKING_STATUSES = ('pending', 'active')
VEHICLE_TYPES = ('bike', 'car', 'suv', 'truck')
PAYMENT_METHODS = ('card', 'upi', 'cash', 'wallet')
TICKET_STATUSES = ('open', 'in_progress', 'resolved', 'closed')
TICKET_CATEGORIES = ('query', 'complaint', 'feedback', 'technical')
TICKET_PRIORITIES = ('low', 'medium', 'high', 'urgent')
STAFF_ROLES = ('Manager', 'Attendant', 'Security')


def utcnow():
    # naive UTC, matching what the DateTime columns store
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _iso(value):
    return value.isoformat() if value else None


def _money(value):
    return float(value) if value is not None else None


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(120), unique=True, nullable=False)
    full_name = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), nullable=True)
    password = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(20), nullable=False, default='user')
    created_at = db.Column(db.DateTime, default=utcnow)

    vehicles = db.relationship('Vehicle', back_populates='user', cascade='all, delete-orphan')
    bookings = db.relationship('Booking', back_populates='user')
    loyalty = db.relationship('LoyaltyPoints', back_populates='user', uselist=False)
    assignment = db.relationship('CentreAssignment', back_populates='user', uselist=False)

    def as_dict(self):
        return {
            'id': self.id,
            'email': self.email,
            'full_name': self.full_name,
            'phone': self.phone,
            'role': self.role,
            'created_at': _iso(self.created_at),
        }


class ParkingCentre(db.Model):
    __tablename__ = 'parking_centres'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), unique=True, nullable=False)
    address = db.Column(db.String(200), nullable=False)
    city = db.Column(db.String(80), nullable=False)
    state = db.Column(db.String(80), nullable=False, default='')
    pincode = db.Column(db.String(20), nullable=False)
    latitude = db.Column(db.Float, nullable=True)
    longitude = db.Column(db.Float, nullable=True)
    operating_hours = db.Column(db.String(40), nullable=False, default='24/7')
    total_capacity = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime, default=utcnow)

    zones = db.relationship('ParkingZone', back_populates='centre', cascade='all, delete-orphan',
                            order_by='ParkingZone.zone_name')

    def as_dict(self, with_zones=False):
        data = {
            'id': self.id,
            'name': self.name,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'pincode': self.pincode,
            'latitude': self.latitude,
            'longitude': self.longitude,
            'operating_hours': self.operating_hours,
            'total_capacity': self.total_capacity,
        }
        if with_zones:
            data['zones'] = [zone.as_dict() for zone in self.zones]
        return data


class ParkingZone(db.Model):
    __tablename__ = 'parking_zones'

    id = db.Column(db.Integer, primary_key=True)
    centre_id = db.Column(db.Integer, db.ForeignKey('parking_centres.id'), nullable=False, index=True)
    zone_name = db.Column(db.String(80), nullable=False)
    zone_type = db.Column(db.String(40), nullable=False)
    floor_number = db.Column(db.Integer, nullable=True)
    total_slots = db.Column(db.Integer, nullable=False, default=0)

    centre = db.relationship('ParkingCentre', back_populates='zones')
    slots = db.relationship('ParkingSlot', back_populates='zone', cascade='all, delete-orphan')

    def as_dict(self):
        return {
            'id': self.id,
            'centre_id': self.centre_id,
            'zone_name': self.zone_name,
            'zone_type': self.zone_type,
            'floor_number': self.floor_number,
            'total_slots': self.total_slots,
        }


class ParkingSlot(db.Model):
    __tablename__ = 'parking_slots'

    id = db.Column(db.Integer, primary_key=True)
    zone_id = db.Column(db.Integer, db.ForeignKey('parking_zones.id'), nullable=False, index=True)
    slot_number = db.Column(db.String(20), nullable=False)
    vehicle_type = db.Column(db.String(20), nullable=False)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=False)
    status = db.Column(db.String(20), nullable=False, default='available')

    zone = db.relationship('ParkingZone', back_populates='slots')
    bookings = db.relationship('Booking', back_populates='slot')

    __table_args__ = (
        db.UniqueConstraint('zone_id', 'slot_number', name='unique_slot_per_zone'),
        db.CheckConstraint("status IN ('available', 'occupied', 'reserved')", name='check_slot_status'),
    )

    def as_dict(self):
        return {
            'id': self.id,
            'zone_id': self.zone_id,
            'slot_number': self.slot_number,
            'vehicle_type': self.vehicle_type,
            'hourly_rate': _money(self.hourly_rate),
            'status': self.status,
        }

    def __repr__(self):
        return f'<ParkingSlot {self.slot_number}: {self.status}>'


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    vehicle_number = db.Column(db.String(20), nullable=False)
    vehicle_type = db.Column(db.String(20), nullable=False)
    vehicle_model = db.Column(db.String(80), nullable=True)
    vehicle_color = db.Column(db.String(40), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', back_populates='vehicles')

    def as_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'vehicle_number': self.vehicle_number,
            'vehicle_type': self.vehicle_type,
            'vehicle_model': self.vehicle_model,
            'vehicle_color': self.vehicle_color,
        }


class Booking(db.Model):
    __tablename__ = 'bookings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), nullable=False)
    slot_id = db.Column(db.Integer, db.ForeignKey('parking_slots.id'), nullable=False)
    booking_start = db.Column(db.DateTime, nullable=False)
    booking_end = db.Column(db.DateTime, nullable=False)
    actual_start = db.Column(db.DateTime, nullable=True)
    actual_end = db.Column(db.DateTime, nullable=True)
    total_hours = db.Column(db.Integer, nullable=True)
    status = db.Column(db.String(20), nullable=False, default='pending')
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', back_populates='bookings')
    vehicle = db.relationship('Vehicle')
    slot = db.relationship('ParkingSlot', back_populates='bookings')
    payments = db.relationship('Payment', back_populates='booking', order_by='Payment.id')
    token = db.relationship('Token', back_populates='booking', uselist=False)

    __table_args__ = (
        db.CheckConstraint("status IN ('pending', 'active', 'completed', 'cancelled')",
                           name='check_booking_status'),
        # one open booking per slot
        db.Index('uq_open_booking_per_slot', 'slot_id', unique=True,
                 sqlite_where=db.text("status IN ('pending', 'active')"),
                 postgresql_where=db.text("status IN ('pending', 'active')")),
    )

    @property
    def is_terminal(self):
        return self.status not in OPEN_BOOKING_STATUSES

    def as_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'vehicle_id': self.vehicle_id,
            'slot_id': self.slot_id,
            'booking_start': _iso(self.booking_start),
            'booking_end': _iso(self.booking_end),
            'actual_start': _iso(self.actual_start),
            'actual_end': _iso(self.actual_end),
            'total_hours': self.total_hours,
            'status': self.status,
            'created_at': _iso(self.created_at),
        }

    def __repr__(self):
        return f'<Booking {self.id}: slot {self.slot_id} {self.status}>'


class Payment(db.Model):
    __tablename__ = 'payments'

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    amount = db.Column(db.Numeric(10, 2), nullable=False)
    payment_method = db.Column(db.String(20), nullable=False)
    payment_status = db.Column(db.String(20), nullable=False, default='pending')
    points_used = db.Column(db.Integer, nullable=False, default=0)
    transaction_id = db.Column(db.String(64), nullable=True)
    paid_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    booking = db.relationship('Booking', back_populates='payments')

    def as_dict(self):
        return {
            'id': self.id,
            'booking_id': self.booking_id,
            'amount': _money(self.amount),
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'points_used': self.points_used,
            'transaction_id': self.transaction_id,
            'paid_at': _iso(self.paid_at),
        }


class Token(db.Model):
    __tablename__ = 'tokens'

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey('bookings.id'), unique=True, nullable=False)
    token_code = db.Column(db.String(64), unique=True, nullable=False, index=True)
    qr_data = db.Column(db.Text, nullable=False)
    is_used = db.Column(db.Boolean, nullable=False, default=False)
    used_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)

    booking = db.relationship('Booking', back_populates='token')

    def as_dict(self):
        return {
            'token_code': self.token_code,
            'qr_data': self.qr_data,
            'is_used': self.is_used,
            'used_at': _iso(self.used_at),
        }


class LoyaltyPoints(db.Model):
    __tablename__ = 'loyalty_points'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    points = db.Column(db.Integer, nullable=False, default=0)
    total_earned = db.Column(db.Integer, nullable=False, default=0)
    total_redeemed = db.Column(db.Integer, nullable=False, default=0)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User', back_populates='loyalty')

    def as_dict(self):
        return {
            'points': self.points,
            'total_earned': self.total_earned,
            'total_redeemed': self.total_redeemed,
            'updated_at': _iso(self.updated_at),
        }


class MembershipPlan(db.Model):
    __tablename__ = 'membership_plans'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    discount_percentage = db.Column(db.Numeric(5, 2), nullable=False, default=Decimal('0'))
    price_monthly = db.Column(db.Numeric(10, 2), nullable=False)
    price_yearly = db.Column(db.Numeric(10, 2), nullable=False)
    benefits = db.Column(db.JSON, nullable=False, default=list)

    def as_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'discount_percentage': _money(self.discount_percentage),
            'price_monthly': _money(self.price_monthly),
            'price_yearly': _money(self.price_yearly),
            'benefits': self.benefits or [],
        }


class UserMembership(db.Model):
    __tablename__ = 'user_memberships'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    plan_id = db.Column(db.Integer, db.ForeignKey('membership_plans.id'), nullable=False)
    start_date = db.Column(db.DateTime, nullable=False, default=utcnow)
    end_date = db.Column(db.DateTime, nullable=False)
    status = db.Column(db.String(20), nullable=False, default='active')

    plan = db.relationship('MembershipPlan')

    __table_args__ = (
        db.Index('uq_active_membership_per_user', 'user_id', unique=True,
                 sqlite_where=db.text("status = 'active'"),
                 postgresql_where=db.text("status = 'active'")),
    )

    def as_dict(self):
        return {
            'id': self.id,
            'plan': self.plan.as_dict() if self.plan else None,
            'start_date': _iso(self.start_date),
            'end_date': _iso(self.end_date),
            'status': self.status,
        }


class CentreAssignment(db.Model):
    """Links a manager or attendant account to the one centre it works at."""
    __tablename__ = 'centre_assignments'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), unique=True, nullable=False)
    centre_id = db.Column(db.Integer, db.ForeignKey('parking_centres.id'), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    user = db.relationship('User', back_populates='assignment')
    centre = db.relationship('ParkingCentre')


class Staff(db.Model):
    __tablename__ = 'staff'

    id = db.Column(db.Integer, primary_key=True)
    centre_id = db.Column(db.Integer, db.ForeignKey('parking_centres.id'), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), nullable=False)
    phone = db.Column(db.String(20), nullable=False)
    role = db.Column(db.String(20), nullable=False)
    shift_timing = db.Column(db.String(40), nullable=True)
    hired_date = db.Column(db.Date, nullable=True)

    centre = db.relationship('ParkingCentre')

    def as_dict(self):
        return {
            'id': self.id,
            'centre_id': self.centre_id,
            'centre_name': self.centre.name if self.centre else None,
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'role': self.role,
            'shift_timing': self.shift_timing,
            'hired_date': _iso(self.hired_date),
        }


class SupportTicket(db.Model):
    __tablename__ = 'customer_support'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    subject = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=False)
    category = db.Column(db.String(20), nullable=False, default='query')
    priority = db.Column(db.String(20), nullable=False, default='medium')
    status = db.Column(db.String(20), nullable=False, default='open')
    assigned_to = db.Column(db.Integer, db.ForeignKey('staff.id'), nullable=True)
    resolved_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship('User')
    assignee = db.relationship('Staff')

    def as_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'subject': self.subject,
            'description': self.description,
            'category': self.category,
            'priority': self.priority,
            'status': self.status,
            'assigned_to': self.assigned_to,
            'resolved_at': _iso(self.resolved_at),
            'created_at': _iso(self.created_at),
        }
