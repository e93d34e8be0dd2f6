from .auth import User, TwoFactorAuth, SessionToken
from .security import SecurityEvent
from .business import Business, Offer
from .spending import Spending, SavingsGoal, RewardRedemption

__all__ = [
    'User', 'TwoFactorAuth', 'SessionToken',
    'SecurityEvent',
    'Business', 'Offer',
    'Spending', 'SavingsGoal', 'RewardRedemption',
]
