"""Booking lifecycle: pending -> active -> completed, or cancelled.

Every transition writes the booking, its slot and any payment/token rows in
one transaction, so slot status always follows the latest open booking.
"""
import logging
import secrets
from datetime import timedelta

from flask import current_app
from sqlalchemy.exc import IntegrityError

from parkwise import db, feed
from parkwise.auth import check_centre_scope
from parkwise.errors import (ConflictError, PartialFailure, PersistenceError,
                             StateTransitionError, ValidationError)
from parkwise.models import (OPEN_BOOKING_STATUSES, PAYMENT_METHODS, Booking, ParkingSlot,
                             ParkingZone, Payment, Vehicle, utcnow)
from parkwise.services import commit, get_or_raise, loyalty, memberships, pricing
from parkwise.services.slots import slot_registry
from parkwise.services.tokens import token_validator

logger = logging.getLogger(__name__)

TRANSITIONS = {
    'pending': ('active', 'cancelled'),
    'active': ('completed', 'cancelled'),
    'completed': (),
    'cancelled': (),
}


def _transaction_id():
    return f'TXN-{secrets.token_hex(6).upper()}'


class BookingOrchestrator:

    def __init__(self, slots=None, tokens=None, now=None):
        self.slots = slots or slot_registry
        self.tokens = tokens or token_validator
        self.now = now or utcnow

    def _check_transition(self, booking, target):
        if target not in TRANSITIONS[booking.status]:
            raise StateTransitionError(
                f'Booking {booking.id} is {booking.status} and cannot become {target}.')

    def _announce(self, booking, event='UPDATE', payments=()):
        feed.publish('bookings', event, booking.as_dict())
        feed.publish('parking_slots', 'UPDATE', booking.slot.as_dict())
        for payment in payments:
            feed.publish('payments', 'INSERT', payment.as_dict())

    # create

    def create(self, user, vehicle_id, slot_id, start, end, payment_method, points_to_redeem=0):
        if start is None or end is None:
            raise ValidationError('Booking start and end are required.')
        if end <= start:
            raise ValidationError('Booking end must be after its start.')
        if payment_method not in PAYMENT_METHODS:
            raise ValidationError(f'Unknown payment method {payment_method!r}.')
        if points_to_redeem < 0:
            raise ValidationError('Points to redeem cannot be negative.')

        vehicle = db.session.get(Vehicle, vehicle_id)
        if vehicle is None or vehicle.user_id != user.id:
            raise ValidationError('Please choose one of your own vehicles.')
        slot = self.slots.get(slot_id)
        if slot.status != 'available':
            raise ConflictError(f'Slot {slot.slot_number} is no longer available.')
        if vehicle.vehicle_type != slot.vehicle_type:
            raise ValidationError(
                f'Slot {slot.slot_number} is for {slot.vehicle_type}, not {vehicle.vehicle_type}.')

        available_points = loyalty.balance(user.id)
        if points_to_redeem > available_points:
            raise ValidationError(f'Only {available_points} loyalty points available.')

        quote = pricing.quote(
            start, end, slot.hourly_rate,
            discount_percentage=memberships.discount_for(user.id, self.now()),
            points_to_redeem=points_to_redeem,
            earn_rate=current_app.config.get('LOYALTY_EARN_RATE', 0.10),
        )

        now = self.now()
        try:
            if not self.slots.claim(slot.id):
                raise ConflictError(f'Slot {slot.slot_number} is no longer available.')
            booking = Booking(
                user_id=user.id,
                vehicle_id=vehicle.id,
                slot_id=slot.id,
                booking_start=start,
                booking_end=end,
                total_hours=quote.hours,
                status='pending',
            )
            db.session.add(booking)
            db.session.flush()

            payment = Payment(
                booking_id=booking.id,
                user_id=user.id,
                amount=quote.total,
                payment_method=payment_method,
                payment_status='completed',
                points_used=quote.points_used,
                transaction_id=_transaction_id(),
                paid_at=now,
            )
            db.session.add(payment)
            loyalty.apply(user.id, quote.points_used, quote.points_earned)
            token = self.tokens.issue(booking, slot, vehicle)
            db.session.add(token)
            db.session.commit()
        except IntegrityError as exc:
            db.session.rollback()
            logger.warning('Slot %s was taken while booking for user %s', slot_id, user.id)
            raise ConflictError('This slot was just booked by someone else.') from exc
        except (ConflictError, ValidationError):
            db.session.rollback()
            raise
        except Exception as exc:
            db.session.rollback()
            logger.error('Booking creation failed for user %s, slot %s', user.id, slot_id, exc_info=True)
            raise PersistenceError('Could not create booking', slot_id=slot_id) from exc

        logger.info('Booking %s created: slot %s, %sh, total %s, points -%s/+%s',
                    booking.id, slot.slot_number, quote.hours, quote.total,
                    quote.points_used, quote.points_earned)
        self._announce(booking, 'INSERT', payments=[payment])
        return booking, payment, token, quote

    # transitions

    def _activate(self, booking):
        self._check_transition(booking, 'active')
        booking.status = 'active'
        booking.actual_start = self.now()
        self.slots.set_status(booking.slot_id, 'occupied')

    def _complete(self, booking):
        self._check_transition(booking, 'completed')
        now = self.now()
        started = booking.actual_start or booking.booking_start
        hours, amount = pricing.settlement_amount(started, now, booking.slot.hourly_rate)
        booking.status = 'completed'
        booking.actual_end = now
        booking.total_hours = hours
        self.slots.release(booking.slot_id)
        if booking.token is not None:
            self.tokens.mark_used(booking.token, now)
        settlement = Payment(
            booking_id=booking.id,
            user_id=booking.user_id,
            amount=amount,
            payment_method='cash',
            payment_status='pending',
            points_used=0,
        )
        db.session.add(settlement)
        return settlement

    def _cancel(self, booking):
        self._check_transition(booking, 'cancelled')
        booking.status = 'cancelled'
        self.slots.release(booking.slot_id)

    def entry(self, code, actor=None):
        """Entry scan: a pending booking becomes active."""
        ctx = self.tokens.redeem(code)
        if actor is not None:
            check_centre_scope(actor, ctx.centre.id)
        if ctx.token.is_used:
            raise StateTransitionError('This token has already been used.')
        self._activate(ctx.booking)
        commit('record entry')
        logger.info('Entry recorded for booking %s at slot %s', ctx.booking.id, ctx.slot.slot_number)
        self._announce(ctx.booking)
        return ctx

    def exit(self, code, actor=None):
        """Exit scan: an active booking completes and the slot is freed."""
        ctx = self.tokens.redeem(code)
        if actor is not None:
            check_centre_scope(actor, ctx.centre.id)
        settlement = self._complete(ctx.booking)
        commit('record exit')
        logger.info('Exit recorded for booking %s: %sh, settlement %s',
                    ctx.booking.id, ctx.booking.total_hours, settlement.amount)
        self._announce(ctx.booking, payments=[settlement])
        return ctx, settlement

    def cancel(self, booking):
        self._cancel(booking)
        commit('cancel booking')
        logger.info('Booking %s cancelled, slot %s released', booking.id, booking.slot_id)
        self._announce(booking)
        return booking

    def set_status(self, booking, status):
        """Staff override that still goes through the state machine."""
        if status not in TRANSITIONS:
            raise ValidationError(f'Invalid booking status {status!r}.')
        settlement = None
        if status == 'active':
            self._activate(booking)
        elif status == 'completed':
            settlement = self._complete(booking)
        elif status == 'cancelled':
            self._cancel(booking)
        else:
            self._check_transition(booking, status)
        commit('update booking status')
        logger.info('Booking %s set to %s by staff', booking.id, status)
        self._announce(booking, payments=[settlement] if settlement else ())
        return booking

    def expire_stale_pending(self, grace_minutes=None):
        """Cancel pending bookings nobody showed up for.

        A booking expires once its start time plus the grace period has
        passed without an entry scan. Each booking is committed on its own.
        """
        if grace_minutes is None:
            grace_minutes = current_app.config.get('NO_SHOW_GRACE_MINUTES', 15)
        cutoff = self.now() - timedelta(minutes=grace_minutes)
        stale = (
            Booking.query
            .filter(Booking.status == 'pending', Booking.booking_start <= cutoff)
            .order_by(Booking.id)
            .all()
        )
        cancelled, failed = [], []
        for booking in stale:
            try:
                self.cancel(booking)
            except PersistenceError:
                failed.append(booking.id)
            else:
                cancelled.append(booking.id)

        if failed:
            if cancelled:
                raise PartialFailure('Some stale bookings could not be cancelled',
                                     committed=cancelled, failed=failed)
            raise PersistenceError('Could not cancel stale bookings', failed=failed)
        if cancelled:
            logger.info('Expired %d stale pending bookings', len(cancelled))
        return cancelled

    # queries

    def get(self, booking_id):
        return get_or_raise(Booking, booking_id, 'Booking')

    def for_user(self, user_id):
        return Booking.query.filter_by(user_id=user_id).order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def for_centre(self, centre_id):
        return (
            Booking.query
            .join(ParkingSlot).join(ParkingZone)
            .filter(ParkingZone.centre_id == centre_id)
            .order_by(Booking.created_at.desc(), Booking.id.desc())
            .all()
        )

    def all(self):
        return Booking.query.order_by(Booking.created_at.desc(), Booking.id.desc()).all()

    def open_for_slot(self, slot_id):
        return Booking.query.filter(Booking.slot_id == slot_id,
                                    Booking.status.in_(OPEN_BOOKING_STATUSES)).all()


orchestrator = BookingOrchestrator()
