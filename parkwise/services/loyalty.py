from parkwise import db
from parkwise.errors import ValidationError
from parkwise.models import LoyaltyPoints


def account_for(user_id):
    account = LoyaltyPoints.query.filter_by(user_id=user_id).first()
    if account is None:
        account = LoyaltyPoints(user_id=user_id, points=0, total_earned=0, total_redeemed=0)
        db.session.add(account)
    return account


def balance(user_id):
    account = LoyaltyPoints.query.filter_by(user_id=user_id).first()
    return account.points if account else 0


def apply(user_id, redeemed, earned):
    """Stage a redemption and an award on the user's account."""
    account = account_for(user_id)
    if redeemed > account.points:
        raise ValidationError(f'Only {account.points} loyalty points available.')
    account.points = account.points - redeemed + earned
    account.total_redeemed += redeemed
    account.total_earned += earned
    return account
