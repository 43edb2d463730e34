# caredoc/models/__init__.py
"""
Database models module initialization.
Exports all database models for convenient imports throughout the application.

Models exported:
- User: Subscriber account, credential and single active session
- EntitlementRecord: Per-(email, product_code) subscription state
- AuditLogEntry: Append-only trail of admin mutations
"""
from .user import User
from .entitlement import EntitlementRecord, SubscriptionStatus, PRODUCT_CODES
from .audit_log import AuditLogEntry
