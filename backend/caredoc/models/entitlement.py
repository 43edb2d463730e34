# caredoc/models/entitlement.py
from enum import Enum
from tortoise import fields, models


class SubscriptionStatus(str, Enum):
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    UNPAID = "unpaid"
    CANCELED = "canceled"
    INCOMPLETE = "incomplete"
    NONE = "none"


TRIAL_STATUSES = {SubscriptionStatus.TRIALING}
GRANTING_STATUSES = {SubscriptionStatus.TRIALING, SubscriptionStatus.ACTIVE}

PRODUCT_CODES = ("monitoring", "conference", "facility_monitoring")


class EntitlementRecord(models.Model):
    """
    One (email, product_code) grant.
    - email: join key, fixed at time of payment (never re-keyed when a user changes email)
    - status: subscription status as last reconciled
    - trial_end / current_period_end: provider timestamps (UTC)
    - stripe_subscription_id: lookup key for subscription lifecycle events
    - subscription_synced_at: last time a lifecycle event wrote this row; a
      redelivered checkout event does not overwrite fields it owns
    Cancellation is a status transition; rows are never deleted.
    """
    id = fields.IntField(pk=True)
    email = fields.CharField(max_length=256, index=True)
    product_code = fields.CharField(max_length=32)
    status = fields.CharEnumField(SubscriptionStatus, max_length=16, default=SubscriptionStatus.NONE)
    trial_end = fields.DatetimeField(null=True)
    current_period_end = fields.DatetimeField(null=True)
    stripe_customer_id = fields.CharField(max_length=64, null=True)
    stripe_subscription_id = fields.CharField(max_length=64, null=True, index=True)
    subscription_synced_at = fields.DatetimeField(null=True)
    created_at = fields.DatetimeField(auto_now_add=True)
    updated_at = fields.DatetimeField(auto_now=True)

    class Meta:
        table = "entitlements"
        unique_together = (("email", "product_code"),)

    def __str__(self) -> str:
        return f"{self.email}/{self.product_code}={self.status.value}"
