from __future__ import annotations

from ..extensions import db
from youfin.time_utils import to_utc_z
from youfin.validation import cents_to_amount


class User(db.Model):
    """
    YouFin account: a parent, a child, or a business.

    Business users carry the business profile columns; child users always
    reference a parent user through parent_id.

    Never hard-deleted.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.CheckConstraint("role IN ('business', 'parent', 'child')", name="ck_users_role"),
        db.Index("ix_users_parent_id", "parent_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=False)
    username = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=False, unique=True, index=True)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(16), nullable=False)

    # Business profile (role=business)
    business_name = db.Column(db.String(255), nullable=True)
    business_type = db.Column(db.String(32), nullable=True)
    address_street = db.Column(db.String(255), nullable=True)
    address_city = db.Column(db.String(128), nullable=True)
    address_state = db.Column(db.String(128), nullable=True)
    address_zip_code = db.Column(db.String(32), nullable=True)
    address_country = db.Column(db.String(128), nullable=True)
    description = db.Column(db.String(500), nullable=True)

    # Child profile (role=child)
    date_of_birth = db.Column(db.Date, nullable=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Account status; tokens are stored as SHA-256 hashes
    is_verified = db.Column(db.Boolean, nullable=False, default=False)
    verification_token_hash = db.Column(db.String(64), nullable=True, index=True)
    verification_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    reset_password_token_hash = db.Column(db.String(64), nullable=True, index=True)
    reset_password_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Allowance and limits, set by the parent on a child account
    allowance_cents = db.Column(db.Integer, nullable=False, default=0)
    allowance_frequency = db.Column(db.String(16), nullable=False, default="monthly")
    allowance_last_paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    spending_limit_daily_cents = db.Column(db.Integer, nullable=False, default=0)
    spending_limit_weekly_cents = db.Column(db.Integer, nullable=False, default=0)
    spending_limit_monthly_cents = db.Column(db.Integer, nullable=False, default=0)

    # Running total of approved spending
    spent_cents = db.Column(db.Integer, nullable=False, default=0)

    avatar = db.Column(db.String(255), nullable=False, default="default-avatar.png")
    theme = db.Column(db.String(8), nullable=False, default="dark")
    notifications_enabled = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    parent = db.relationship(
        "User",
        remote_side=[id],
        backref=db.backref("children", lazy=True, order_by="User.id"),
    )
    two_factor = db.relationship(
        "TwoFactorAuth",
        uselist=False,
        back_populates="user",
        cascade="all, delete-orphan",
    )

    def is_parent(self) -> bool:
        return self.role == "parent"

    def is_child(self) -> bool:
        return self.role == "child"

    def is_business(self) -> bool:
        return self.role == "business"

    @property
    def two_factor_enabled(self) -> bool:
        return bool(self.two_factor and self.two_factor.enabled)

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "role": self.role,
            "isVerified": self.is_verified,
        }

    def to_dict(self) -> dict:
        data = {
            **self.to_summary(),
            "username": self.username,
            "avatar": self.avatar,
            "preferences": {
                "theme": self.theme,
                "notifications": self.notifications_enabled,
            },
            "twoFactorAuth": {"enabled": self.two_factor_enabled},
            "spent": cents_to_amount(self.spent_cents),
            "lastLogin": to_utc_z(self.last_login_at),
            "createdAt": to_utc_z(self.created_at),
            "updatedAt": to_utc_z(self.updated_at),
        }
        if self.is_business():
            data.update({
                "businessName": self.business_name,
                "businessType": self.business_type,
                "address": {
                    "street": self.address_street,
                    "city": self.address_city,
                    "state": self.address_state,
                    "zipCode": self.address_zip_code,
                    "country": self.address_country,
                },
                "description": self.description,
            })
        if self.is_child():
            data.update({
                "dateOfBirth": self.date_of_birth.isoformat() if self.date_of_birth else None,
                "parentId": self.parent_id,
                "allowance": {
                    "amount": cents_to_amount(self.allowance_cents),
                    "frequency": self.allowance_frequency,
                    "lastPaid": to_utc_z(self.allowance_last_paid_at),
                },
                "spendingLimit": {
                    "daily": cents_to_amount(self.spending_limit_daily_cents),
                    "weekly": cents_to_amount(self.spending_limit_weekly_cents),
                    "monthly": cents_to_amount(self.spending_limit_monthly_cents),
                },
            })
        if self.is_parent():
            data["children"] = [child.id for child in self.children]
        return data


class TwoFactorAuth(db.Model):
    """
    TOTP second factor for a user (one row per user).

    temp_secret holds a freshly generated secret until the user proves
    possession with a valid code; it then moves to secret and enabled flips.
    """
    __tablename__ = "two_factor_auth"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, unique=True)

    enabled = db.Column(db.Boolean, nullable=False, default=False)
    secret = db.Column(db.String(64), nullable=True)
    temp_secret = db.Column(db.String(64), nullable=True)
    otp_url = db.Column(db.Text, nullable=True)
    data_url = db.Column(db.Text, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    user = db.relationship("User", back_populates="two_factor")


class SessionToken(db.Model):
    """
    Login session. Only the SHA-256 hash of the bearer/cookie token is stored.
    """
    __tablename__ = "session_tokens"
    __table_args__ = (
        db.Index("ix_session_tokens_user_revoked", "user_id", "is_revoked"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    token_hash = db.Column(db.String(64), nullable=False, unique=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False)

    is_revoked = db.Column(db.Boolean, nullable=False, default=False)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_reason = db.Column(db.String(128), nullable=True)

    user_agent = db.Column(db.String(512), nullable=True)
    ip_address = db.Column(db.String(45), nullable=True)

    user = db.relationship("User", backref=db.backref("sessions", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "userId": self.user_id,
            "createdAt": to_utc_z(self.created_at),
            "expiresAt": to_utc_z(self.expires_at),
        }
