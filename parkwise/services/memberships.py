import logging
from datetime import timedelta

from parkwise import db
from parkwise.errors import ConflictError
from parkwise.models import MembershipPlan, UserMembership, utcnow
from parkwise.services import commit, get_or_raise

logger = logging.getLogger(__name__)

MONTH = timedelta(days=30)
YEAR = timedelta(days=365)


def active_membership(user_id, now=None):
    now = now or utcnow()
    return (
        UserMembership.query
        .filter(UserMembership.user_id == user_id,
                UserMembership.status == 'active',
                UserMembership.end_date > now)
        .first()
    )


def discount_for(user_id, now=None):
    membership = active_membership(user_id, now)
    if membership is None:
        return 0
    return membership.plan.discount_percentage


def subscribe(user_id, plan_id, yearly=False, now=None):
    now = now or utcnow()
    plan = get_or_raise(MembershipPlan, plan_id, 'Membership plan')

    current = (
        UserMembership.query
        .filter_by(user_id=user_id, status='active')
        .first()
    )
    if current is not None:
        if current.end_date <= now:
            current.status = 'expired'
        elif current.plan_id == plan.id:
            raise ConflictError('You already have this membership plan.')
        elif plan.price_monthly < current.plan.price_monthly:
            raise ConflictError('You cannot downgrade to a lower tier membership while it is active.')
        else:
            current.status = 'replaced'
        # the partial unique index on active memberships sees this first
        db.session.flush()

    membership = UserMembership(
        user_id=user_id,
        plan_id=plan.id,
        start_date=now,
        end_date=now + (YEAR if yearly else MONTH),
        status='active',
    )
    db.session.add(membership)
    commit('subscribe to membership plan')
    logger.info('User %s subscribed to plan %s (%s)', user_id, plan.name, 'yearly' if yearly else 'monthly')
    return membership
