from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from parkwise import db
from parkwise.auth import Capability, requires
from parkwise.errors import AccessDenied, ConflictError, ValidationError
from parkwise.models import (OPEN_BOOKING_STATUSES, VEHICLE_TYPES, Booking, MembershipPlan,
                             ParkingCentre, Payment, User, Vehicle)
from parkwise.routes import booking_view, parse_datetime, parse_int, payload, text
from parkwise.services import centres, commit, get_or_raise, loyalty, memberships, support
from parkwise.services.bookings import orchestrator
from parkwise.services.slots import slot_registry

user_bp = Blueprint('user', __name__, url_prefix='/api')


@user_bp.route('/')
def index():
    return jsonify({'service': 'ParkWise', 'status': 'ok'})


# accounts

@user_bp.route('/register', methods=['POST'])
def register():
    data = payload()
    email = text(data.get('email'), 'email').lower()
    password = data.get('password') or ''
    full_name = text(data.get('full_name'), 'full_name')

    if not email or not password or not full_name:
        raise ValidationError('Email, password and full name are required.')
    if len(password) < 6:
        raise ValidationError('Password must be at least 6 characters.')
    if User.query.filter_by(email=email).first():
        raise ConflictError('An account with this email already exists.')

    # staff roles are only ever granted by an admin
    new_user = User(
        email=email,
        full_name=full_name,
        phone=data.get('phone'),
        password=generate_password_hash(password),
        role='user',
    )
    db.session.add(new_user)
    db.session.flush()
    loyalty.account_for(new_user.id)
    commit('register')
    current_app.logger.info('Registered user %s', new_user.id)
    return jsonify(new_user.as_dict()), 201


@user_bp.route('/login', methods=['POST'])
def login():
    data = payload()
    email = (data.get('email') or '').strip().lower()
    user = User.query.filter_by(email=email).first()
    if user and check_password_hash(user.password, data.get('password') or ''):
        login_user(user)
        return jsonify(user.as_dict())
    current_app.logger.warning('Failed login for %s', email)
    return jsonify({'error': 'Invalid credentials. Please try again.', 'code': 'invalid_credentials'}), 401


@user_bp.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({'message': 'You have been logged out.'})


@user_bp.route('/profile', methods=['GET', 'PATCH'])
@login_required
def profile():
    if request.method == 'PATCH':
        data = payload()
        if 'full_name' in data:
            full_name = text(data['full_name'], 'full_name')
            if not full_name:
                raise ValidationError('Full name cannot be empty.')
            current_user.full_name = full_name
        if 'phone' in data:
            current_user.phone = data['phone']
        commit('update profile')
    return jsonify(current_user.as_dict())


# vehicles

def _own_vehicle(vehicle_id):
    vehicle = get_or_raise(Vehicle, vehicle_id, 'Vehicle')
    if vehicle.user_id != current_user.id:
        raise AccessDenied('Unauthorized')
    return vehicle


def _vehicle_fields(data, vehicle):
    if 'vehicle_number' in data:
        number = text(data.get('vehicle_number'), 'vehicle_number').upper()
        if not number:
            raise ValidationError('Vehicle number is required.')
        vehicle.vehicle_number = number
    if 'vehicle_type' in data:
        if data['vehicle_type'] not in VEHICLE_TYPES:
            raise ValidationError(f'Vehicle type must be one of {", ".join(VEHICLE_TYPES)}.')
        vehicle.vehicle_type = data['vehicle_type']
    if 'vehicle_model' in data:
        vehicle.vehicle_model = data['vehicle_model']
    if 'vehicle_color' in data:
        vehicle.vehicle_color = data['vehicle_color']


@user_bp.route('/vehicles', methods=['GET', 'POST'])
@requires(Capability.BOOK)
def vehicles():
    if request.method == 'POST':
        data = payload()
        if not data.get('vehicle_number') or not data.get('vehicle_type'):
            raise ValidationError('Vehicle number and type are required.')
        vehicle = Vehicle(user_id=current_user.id)
        _vehicle_fields(data, vehicle)
        db.session.add(vehicle)
        commit('add vehicle')
        return jsonify(vehicle.as_dict()), 201

    rows = Vehicle.query.filter_by(user_id=current_user.id).order_by(Vehicle.created_at.desc()).all()
    return jsonify([vehicle.as_dict() for vehicle in rows])


@user_bp.route('/vehicles/<int:vehicle_id>', methods=['PUT', 'DELETE'])
@requires(Capability.BOOK)
def vehicle_detail(vehicle_id):
    vehicle = _own_vehicle(vehicle_id)
    history = Booking.query.filter_by(vehicle_id=vehicle.id)
    if request.method == 'DELETE':
        # bookings keep pointing at their vehicle after they end
        if history.first() is not None:
            raise ConflictError('This vehicle has bookings and cannot be deleted.')
        db.session.delete(vehicle)
        commit('delete vehicle')
        return jsonify({'message': 'Vehicle deleted.'})

    data = payload()
    open_booking = history.filter(Booking.status.in_(OPEN_BOOKING_STATUSES)).first()
    if open_booking is not None and 'vehicle_type' in data and data['vehicle_type'] != vehicle.vehicle_type:
        raise ConflictError('Cannot change the type of a vehicle with an open booking.')
    _vehicle_fields(data, vehicle)
    commit('update vehicle')
    return jsonify(vehicle.as_dict())


# centres and slots

@user_bp.route('/centres')
def list_centres():
    return jsonify([centre.as_dict(with_zones=True) for centre in centres.list_centres()])


@user_bp.route('/centres/<int:centre_id>')
def centre_detail(centre_id):
    centre = get_or_raise(ParkingCentre, centre_id, 'Parking centre')
    return jsonify(centre.as_dict(with_zones=True))


@user_bp.route('/centres/<int:centre_id>/zones')
def centre_zones(centre_id):
    return jsonify([zone.as_dict() for zone in centres.zones_of(centre_id)])


@user_bp.route('/zones/<int:zone_id>/slots')
def zone_slots(zone_id):
    return jsonify([slot.as_dict() for slot in centres.slots_of(zone_id)])


@user_bp.route('/centres/<int:centre_id>/available-slots')
def available_slots(centre_id):
    get_or_raise(ParkingCentre, centre_id, 'Parking centre')
    vehicle_type = request.args.get('vehicle_type')
    if vehicle_type == 'all':
        vehicle_type = None
    slots = slot_registry.list_available(centre_id, vehicle_type)
    return jsonify([dict(slot.as_dict(), zone_name=slot.zone.zone_name,
                         floor_number=slot.zone.floor_number) for slot in slots])


# bookings

def _own_booking(booking_id):
    booking = orchestrator.get(booking_id)
    if booking.user_id != current_user.id:
        raise AccessDenied('Unauthorized')
    return booking


@user_bp.route('/bookings', methods=['GET', 'POST'])
@requires(Capability.BOOK)
def bookings():
    if request.method == 'GET':
        return jsonify([booking_view(b, with_token=True) for b in orchestrator.for_user(current_user.id)])

    data = payload()
    booking, payment, token, quote = orchestrator.create(
        current_user,
        vehicle_id=parse_int(data.get('vehicle_id'), 'vehicle_id'),
        slot_id=parse_int(data.get('slot_id'), 'slot_id'),
        start=parse_datetime(data.get('booking_start'), 'booking_start'),
        end=parse_datetime(data.get('booking_end'), 'booking_end'),
        payment_method=data.get('payment_method') or 'card',
        points_to_redeem=parse_int(data.get('points_to_redeem'), 'points_to_redeem', default=0),
    )
    return jsonify({
        'booking': booking_view(booking, with_token=True),
        'payment': payment.as_dict(),
        'token': token.as_dict(),
        'pricing': {
            'hours': quote.hours,
            'hourly_rate': float(quote.hourly_rate),
            'base': float(quote.base),
            'membership_discount': float(quote.membership_discount),
            'points_used': quote.points_used,
            'points_discount': float(quote.points_discount),
            'total': float(quote.total),
            'points_earned': quote.points_earned,
        },
    }), 201


@user_bp.route('/bookings/<int:booking_id>')
@requires(Capability.BOOK)
def booking_detail(booking_id):
    return jsonify(booking_view(_own_booking(booking_id), with_token=True))


@user_bp.route('/bookings/<int:booking_id>/cancel', methods=['POST'])
@requires(Capability.BOOK)
def cancel_booking(booking_id):
    booking = orchestrator.cancel(_own_booking(booking_id))
    return jsonify(booking_view(booking))


# memberships, loyalty, payments

@user_bp.route('/memberships/plans')
def membership_plans():
    plans = MembershipPlan.query.order_by(MembershipPlan.price_monthly).all()
    return jsonify([plan.as_dict() for plan in plans])


@user_bp.route('/memberships', methods=['GET', 'POST'])
@requires(Capability.BOOK)
def membership():
    if request.method == 'POST':
        data = payload()
        billing = data.get('billing', 'monthly')
        if billing not in ('monthly', 'yearly'):
            raise ValidationError("Billing must be 'monthly' or 'yearly'.")
        subscribed = memberships.subscribe(
            current_user.id, parse_int(data.get('plan_id'), 'plan_id'), yearly=billing == 'yearly')
        return jsonify(subscribed.as_dict()), 201

    current = memberships.active_membership(current_user.id)
    return jsonify(current.as_dict() if current else None)


@user_bp.route('/loyalty')
@requires(Capability.BOOK)
def loyalty_balance():
    account = loyalty.account_for(current_user.id)
    commit('open loyalty account')
    return jsonify(account.as_dict())


@user_bp.route('/payments')
@requires(Capability.BOOK)
def payments():
    rows = Payment.query.filter_by(user_id=current_user.id).order_by(Payment.created_at.desc()).all()
    return jsonify([payment.as_dict() for payment in rows])


# support

@user_bp.route('/support', methods=['GET', 'POST'])
@login_required
def support_tickets():
    if request.method == 'POST':
        data = payload()
        ticket = support.open_ticket(
            current_user,
            subject=data.get('subject'),
            description=data.get('description'),
            category=data.get('category', 'query'),
            priority=data.get('priority', 'medium'),
        )
        body = ticket.as_dict()
        body['message'] = ('Support ticket created and assigned to an attendant' if ticket.assigned_to
                           else 'Support ticket created (no attendants available for assignment)')
        return jsonify(body), 201

    return jsonify([ticket.as_dict() for ticket in support.tickets_for_user(current_user.id)])
