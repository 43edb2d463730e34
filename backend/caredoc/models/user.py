# caredoc/models/user.py
"""
Database model for users.
Represents one subscriber account: credentials, profile, the single active
session and the denormalized payment-customer id.
"""
import uuid
from tortoise import fields, models


class User(models.Model):
    """
    User database model.

    Security:
    - Password is stored as an argon2 hash (never plain text)
    - Only the sha256 digest of the active session token is stored; issuing a
      new token overwrites it, which invalidates every earlier session
    - Rows are never hard-deleted; `status` is a soft state

    Entitlements are NOT stored here. They live in EntitlementRecord keyed by
    the email the payment was made with. `stripe_customer_id` is a fast path
    that may lag behind the ledger.
    """
    id = fields.UUIDField(pk=True, default=uuid.uuid4)
    auth_user_id = fields.CharField(max_length=64, null=True, index=True)  # Identity-provider id (absent for legacy rows)
    email = fields.CharField(max_length=256, unique=True, index=True)  # Case-sensitive as stored
    user_name = fields.CharField(max_length=128, null=True)
    phone = fields.CharField(max_length=32, null=True)
    plan = fields.CharField(max_length=32, null=True)  # Plan tier label
    seat_limit = fields.IntField(default=1)  # Corporate seat count
    password_hash = fields.CharField(max_length=255, null=True)
    password_initialized = fields.BooleanField(default=False)  # False while a temporary credential is in force
    session_token_hash = fields.CharField(max_length=64, null=True)
    status = fields.CharField(max_length=16, default="active")  # active | suspended
    stripe_customer_id = fields.CharField(max_length=64, null=True)
    last_login_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        """Tortoise ORM metadata configuration."""
        table = "users"

    @property
    def is_active(self) -> bool:
        return self.status == "active"
