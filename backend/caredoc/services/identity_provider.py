"""
Identity Provider Service

Talks to the Supabase Auth admin REST API:
1. Create an account (email confirmed, with an initial password)
2. Update an account's password
3. Delete an account (compensation when the local insert fails)
"""
import logging
from typing import Optional

import httpx

from ..config import settings
from ..core.errors import AlreadyExists, UpstreamAuthError

logger = logging.getLogger("uvicorn.error")


class IdentityProviderService:
    """Supabase Auth admin client"""

    def __init__(self):
        self.base_url = (settings.supabase_url or "").rstrip("/")
        self.service_key = settings.supabase_service_role_key
        self.timeout = settings.identity_timeout_sec

    def is_available(self) -> bool:
        """Check if project URL and service-role key are configured"""
        return bool(self.base_url) and bool(self.service_key)

    def _headers(self) -> dict:
        return {
            "apikey": self.service_key,
            "Authorization": f"Bearer {self.service_key}",
            "Content-Type": "application/json",
        }

    async def _request(self, method: str, path: str, payload: Optional[dict] = None) -> httpx.Response:
        url = f"{self.base_url}/auth/v1/admin{path}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                resp = await client.request(method, url, headers=self._headers(), json=payload)
        except httpx.HTTPError as e:
            logger.error("[identity] %s %s failed: %s", method, path, e)
            raise UpstreamAuthError(f"identity provider unreachable: {e}") from e
        return resp

    async def create_user(self, email: str, password: str, metadata: Optional[dict] = None) -> str:
        """
        Create an email-confirmed account.

        Returns:
            The identity provider's user id

        Raises:
            AlreadyExists: provider already has an account for this email
            UpstreamAuthError: any other rejection
        """
        resp = await self._request(
            "POST",
            "/users",
            {
                "email": email,
                "password": password,
                "email_confirm": True,
                "user_metadata": metadata or {},
            },
        )
        if resp.status_code in (409, 422):
            body = _safe_json(resp)
            if body.get("error_code") == "email_exists" or "already" in str(body.get("msg", "")).lower():
                raise AlreadyExists("Email already registered", field="email")
        if resp.status_code >= 400:
            logger.error("[identity] create_user rejected status=%s body=%s", resp.status_code, resp.text[:300])
            raise UpstreamAuthError(f"identity provider rejected account creation ({resp.status_code})")

        body = _safe_json(resp)
        user_id = body.get("id") or (body.get("user") or {}).get("id")
        if not user_id:
            raise UpstreamAuthError("identity provider returned no user id")
        return str(user_id)

    async def update_password(self, auth_user_id: str, password: str) -> None:
        resp = await self._request("PUT", f"/users/{auth_user_id}", {"password": password})
        if resp.status_code >= 400:
            logger.error("[identity] update_password rejected status=%s id=%s", resp.status_code, auth_user_id)
            raise UpstreamAuthError(f"identity provider rejected password update ({resp.status_code})")

    async def delete_user(self, auth_user_id: str) -> None:
        resp = await self._request("DELETE", f"/users/{auth_user_id}")
        if resp.status_code >= 400 and resp.status_code != 404:
            raise UpstreamAuthError(f"identity provider rejected deletion ({resp.status_code})")


def _safe_json(resp: httpx.Response) -> dict:
    try:
        data = resp.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


# Global singleton
identity_provider = IdentityProviderService()
