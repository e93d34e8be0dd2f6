# Overview: Location-based rewards (mocked catalogue) and per-user redemptions.

"""
Rewards Service

The reward catalogue is static demo data positioned around the caller's
location. Redemptions are persisted, at most one per (user, reward).
"""

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import RewardRedemption, User
from youfin.time_utils import utcnow
from youfin.validation import ValidationError


# (id, name, type, address, distance label, rewards, lat offset, lng offset)
REWARD_CATALOGUE = [
    ("1", "Starbucks Coffee", "Cafe", "123 Main St", "0.2 km",
     [{"type": "cashback", "value": "5%"}, {"type": "points", "value": "2x"}], 0.001, 0.001),
    ("2", "Target", "Retail", "456 Market St", "0.5 km",
     [{"type": "cashback", "value": "3%"}, {"type": "points", "value": "1.5x"}], -0.001, -0.001),
    ("3", "Whole Foods", "Grocery", "789 Oak St", "0.8 km",
     [{"type": "cashback", "value": "4%"}, {"type": "points", "value": "2x"}], 0.002, -0.002),
    ("4", "Apple Store", "Tech", "1 Infinite Loop", "1.2 km",
     [{"type": "cashback", "value": "2%"}, {"type": "points", "value": "3x"}], -0.002, 0.003),
    ("5", "Gym Plus", "Fitness", "42 Exercise Way", "1.5 km",
     [{"type": "cashback", "value": "10%"}], 0.003, -0.001),
]


def nearby_rewards(lat: float, lng: float) -> list[dict]:
    return [
        {
            "id": reward_id,
            "name": name,
            "type": reward_type,
            "address": address,
            "distance": distance,
            "rewards": [dict(r) for r in rewards],
            "lat": round(lat + d_lat, 6),
            "lng": round(lng + d_lng, 6),
        }
        for reward_id, name, reward_type, address, distance, rewards, d_lat, d_lng in REWARD_CATALOGUE
    ]


def redeem(user: User, reward_id) -> RewardRedemption:
    if reward_id in (None, ""):
        raise ValidationError("Reward ID is required")
    reward_id = str(reward_id).strip()[:64]

    existing = db.session.query(RewardRedemption).filter_by(user_id=user.id, reward_id=reward_id).first()
    if existing:
        raise ValidationError("Reward already redeemed")

    redemption = RewardRedemption(user_id=user.id, reward_id=reward_id, redeemed_at=utcnow())
    db.session.add(redemption)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ValidationError("Reward already redeemed")
    return redemption


def redeemed(user: User) -> list[RewardRedemption]:
    return (
        db.session.query(RewardRedemption)
        .filter_by(user_id=user.id)
        .order_by(RewardRedemption.redeemed_at, RewardRedemption.id)
        .all()
    )
