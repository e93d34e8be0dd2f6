from __future__ import annotations

from ..extensions import db
from youfin.time_utils import to_utc_z
from youfin.validation import cents_to_amount


class Spending(db.Model):
    """
    A recorded expense.

    Approval lifecycle: children's spending above the approval threshold is
    stored with is_approved_by_parent=False and flips to True exactly once,
    when the parent approves. Everything else is approved on creation.
    """
    __tablename__ = "spendings"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_spendings_amount_positive"),
        db.Index("ix_spendings_user_occurred", "user_id", "occurred_at"),
        db.Index("ix_spendings_lat_lng", "latitude", "longitude"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(500), nullable=True)
    category = db.Column(db.String(32), nullable=False, default="other")  # food, shopping, entertainment, education, transport, other
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False)

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    payment_method = db.Column(db.String(16), nullable=False, default="cash")  # cash, card, digital

    is_approved_by_parent = db.Column(db.Boolean, nullable=False, default=False, index=True)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    tags = db.Column(db.JSON, nullable=False, default=list)
    receipt_url = db.Column(db.String(1024), nullable=True)
    receipt_uploaded_at = db.Column(db.DateTime(timezone=True), nullable=True)

    user = db.relationship("User", foreign_keys=[user_id], backref=db.backref("spendings", lazy=True))
    approved_by = db.relationship("User", foreign_keys=[approved_by_user_id])
    business = db.relationship("Business", backref=db.backref("spendings", lazy=True))

    def to_dict(self, *, include_business: bool = False) -> dict:
        data = {
            "id": self.id,
            "userId": self.user_id,
            "businessId": self.business_id,
            "amount": cents_to_amount(self.amount_cents),
            "amountCents": self.amount_cents,
            "description": self.description,
            "category": self.category,
            "timestamp": to_utc_z(self.occurred_at),
            "location": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
            },
            "paymentMethod": self.payment_method,
            "isApprovedByParent": self.is_approved_by_parent,
            "approvedBy": self.approved_by_user_id,
            "approvedAt": to_utc_z(self.approved_at),
            "tags": list(self.tags or []),
            "receipt": {
                "url": self.receipt_url,
                "uploadedAt": to_utc_z(self.receipt_uploaded_at),
            } if self.receipt_url else None,
        }
        if include_business and self.business is not None:
            data["business"] = self.business.to_dict(include_offers=False)
        return data


class SavingsGoal(db.Model):
    """Something a user is saving towards."""
    __tablename__ = "savings_goals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    name = db.Column(db.String(255), nullable=False)
    target_amount_cents = db.Column(db.Integer, nullable=False)
    current_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    deadline = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User", backref=db.backref("goals", lazy=True, order_by="SavingsGoal.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "name": self.name,
            "targetAmount": cents_to_amount(self.target_amount_cents),
            "currentAmount": cents_to_amount(self.current_amount_cents),
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "completed": self.current_amount_cents >= self.target_amount_cents,
            "createdAt": to_utc_z(self.created_at),
        }


class RewardRedemption(db.Model):
    """A reward a user has redeemed; at most once per (user, reward)."""
    __tablename__ = "reward_redemptions"
    __table_args__ = (
        db.UniqueConstraint("user_id", "reward_id", name="uq_reward_redemptions_user_reward"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    reward_id = db.Column(db.String(64), nullable=False)
    redeemed_at = db.Column(db.DateTime(timezone=True), nullable=False)

    user = db.relationship("User", backref=db.backref("reward_redemptions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "rewardId": self.reward_id,
            "redeemedAt": to_utc_z(self.redeemed_at),
        }
