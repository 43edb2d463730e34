# caredoc/models/audit_log.py
from typing import Optional
from tortoise import fields, models


class AuditLogEntry(models.Model):
    """
    Immutable record of a privileged mutation made through the admin control plane.

    Written in the same transaction as the mutation it describes. Rows can be
    inserted but never updated or deleted.
    """
    id = fields.IntField(pk=True)
    action = fields.CharField(max_length=32)  # create_user / reset_password / billing_status / grant_product
    target_user: Optional[fields.ForeignKeyNullableRelation["User"]] = fields.ForeignKeyField(
        "models.User", related_name="audit_entries", null=True, on_delete=fields.RESTRICT
    )
    target_email = fields.CharField(max_length=256, null=True)
    product_code = fields.CharField(max_length=32, null=True)
    previous_status = fields.CharField(max_length=16, null=True)
    new_status = fields.CharField(max_length=16, null=True)
    trial_days = fields.IntField(null=True)
    reason = fields.TextField()
    actor = fields.CharField(max_length=128, default="admin")
    created_at = fields.DatetimeField(auto_now_add=True)

    class Meta:
        table = "admin_audit_logs"
        ordering = ["-created_at", "-id"]

    async def save(self, *args, **kwargs) -> None:
        if self._saved_in_db:
            raise RuntimeError("audit log entries are append-only")
        await super().save(*args, **kwargs)

    async def delete(self, *args, **kwargs) -> None:
        raise RuntimeError("audit log entries are append-only")
