import math
from collections import namedtuple
from decimal import ROUND_HALF_UP, Decimal

from parkwise.errors import ValidationError

CENTS = Decimal('0.01')
HOUR_SECONDS = 3600

Quote = namedtuple('Quote', [
    'hours', 'hourly_rate', 'base', 'membership_discount',
    'points_used', 'points_discount', 'total', 'points_earned',
])


def _money(value):
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def billable_hours(start, end):
    """Whole hours between two datetimes, rounded up, never less than one."""
    seconds = (end - start).total_seconds()
    return max(1, math.ceil(seconds / HOUR_SECONDS))


def points_earned(base, earn_rate):
    return int(math.floor(Decimal(base) * Decimal(str(earn_rate))))


def quote(start, end, hourly_rate, discount_percentage=0, points_to_redeem=0, earn_rate=0.10):
    """Price a booking.

    The membership discount is a percentage of the base fee; loyalty points
    are then redeemed 1:1 against what is left, never below zero. Points
    are earned on the base fee, not on what the customer paid.
    """
    if end <= start:
        raise ValidationError('Booking end must be after its start.')
    if points_to_redeem < 0:
        raise ValidationError('Points to redeem cannot be negative.')

    rate = Decimal(hourly_rate)
    hours = billable_hours(start, end)
    base = _money(rate * hours)
    membership_discount = _money(base * Decimal(discount_percentage) / 100)
    remaining = base - membership_discount

    # only whole points are spent; any fraction left is paid in money
    points_used = min(points_to_redeem, int(math.floor(remaining)))
    points_discount = Decimal(points_used)
    total = max(Decimal('0'), remaining - points_discount)

    return Quote(
        hours=hours,
        hourly_rate=rate,
        base=base,
        membership_discount=membership_discount,
        points_used=points_used,
        points_discount=_money(points_discount),
        total=_money(total),
        points_earned=points_earned(base, earn_rate),
    )


def settlement_amount(actual_start, actual_end, hourly_rate):
    hours = billable_hours(actual_start, actual_end)
    return hours, _money(Decimal(hourly_rate) * hours)
