# caredoc/core/__init__.py
"""
Core application modules.
Contains essential infrastructure components:
- bootstrap: Startup checks for required secrets
- db: Database configuration and connection management
- errors: Error taxonomy mapped to HTTP responses
- rate_limit: In-process anonymous free-tier counter
- security: Password hashing, session tokens and JWT access tokens
"""
