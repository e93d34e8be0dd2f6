from __future__ import annotations

from ..extensions import db
from youfin.time_utils import to_utc_z, utcnow


WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")


class Business(db.Model):
    """
    A place where users spend money, with a location and optional offers.
    """
    __tablename__ = "businesses"
    __table_args__ = (
        db.CheckConstraint("rating >= 0 AND rating <= 5", name="ck_businesses_rating"),
        db.CheckConstraint("price_level >= 1 AND price_level <= 3", name="ck_businesses_price_level"),
        db.Index("ix_businesses_lat_lng", "latitude", "longitude"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    type = db.Column(db.String(32), nullable=False, index=True)  # food, shopping, entertainment, education, bank

    latitude = db.Column(db.Float, nullable=False)
    longitude = db.Column(db.Float, nullable=False)

    street = db.Column(db.String(255), nullable=True)
    city = db.Column(db.String(128), nullable=True)
    country = db.Column(db.String(128), nullable=False, default="Albania")

    description = db.Column(db.Text, nullable=True)
    budget_category = db.Column(db.String(64), nullable=True)
    raiffeisen_info = db.Column(db.Text, nullable=True)

    # {"monday": {"open": "08:00", "close": "20:00"}, ...}
    operating_hours = db.Column(db.JSON(none_as_null=True), nullable=True)

    rating = db.Column(db.Float, nullable=False, default=0)
    price_level = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    offers = db.relationship(
        "Offer",
        back_populates="business",
        lazy=True,
        order_by="Offer.id",
        cascade="all, delete-orphan",
    )

    def active_offers(self, now=None) -> list["Offer"]:
        now = now or utcnow()
        return [o for o in self.offers if o.is_available(now)]

    def to_dict(self, *, include_offers: bool = True) -> dict:
        data = {
            "id": self.id,
            "name": self.name,
            "type": self.type,
            "location": {
                "type": "Point",
                "coordinates": [self.longitude, self.latitude],
            },
            "address": {
                "street": self.street,
                "city": self.city,
                "country": self.country,
            },
            "description": self.description,
            "budgetCategory": self.budget_category,
            "raiffeisenInfo": self.raiffeisen_info,
            "operatingHours": self.operating_hours,
            "rating": self.rating,
            "priceLevel": self.price_level,
            "createdAt": to_utc_z(self.created_at),
        }
        if include_offers:
            data["offers"] = [o.to_dict() for o in self.offers]
        return data


class Offer(db.Model):
    """
    Business-defined discount with an active window.

    Claimed offers are deactivated (one claim per offer).
    """
    __tablename__ = "offers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    business_id = db.Column(db.Integer, db.ForeignKey("businesses.id"), nullable=False, index=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    discount = db.Column(db.String(64), nullable=True)  # "10%", "2x1", ...
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    claimed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    claimed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    business = db.relationship("Business", back_populates="offers")

    def is_available(self, now=None) -> bool:
        if not self.is_active:
            return False
        if self.valid_until is None:
            return True
        return self.valid_until > (now or utcnow())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "businessId": self.business_id,
            "title": self.title,
            "description": self.description,
            "discount": self.discount,
            "validUntil": to_utc_z(self.valid_until),
            "isActive": self.is_active,
            "claimedBy": self.claimed_by_user_id,
            "claimedAt": to_utc_z(self.claimed_at),
        }
