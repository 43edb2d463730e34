"""
Login Notification Mail Service

Sends the "thank you for your purchase / here is your login" email through the
Resend HTTP API. Delivery is best-effort: callers run it off the request path
and a failure is only logged.
"""
import logging
from html import escape

import httpx

from ..config import settings

logger = logging.getLogger("uvicorn.error")

SUBJECT = "【やさしいモニタリングAI】ご購入ありがとうございます｜ログイン情報のご案内"


class LoginMailService:
    """Resend email client"""

    def __init__(self):
        self.api_key = settings.resend_api_key
        self.api_url = settings.resend_api_url
        self.sender = settings.mail_from

    def is_available(self) -> bool:
        """Check if API key is configured and sending is enabled"""
        return bool(self.api_key) and settings.enable_login_email

    def _render(self, email: str, user_name: str | None, temporary_password: str) -> str:
        name = escape(user_name or email)
        login_url = f"{settings.app_base_url.rstrip('/')}/login.html"
        return f"""
<p>{name} 様</p>
<p>この度はご購入いただきありがとうございます。以下がログイン情報となります。</p>
<p><b>■ ログインURL</b><br>{escape(login_url)}</p>
<p><b>■ ID（メールアドレス）</b><br>{escape(email)}</p>
<p><b>■ 仮パスワード</b><br>{escape(temporary_password)}</p>
<p>※ログイン後、必ずパスワード変更をお願いいたします。</p>
"""

    async def send_login_info(self, email: str, user_name: str | None, temporary_password: str) -> bool:
        """
        Send login details to a newly provisioned subscriber.

        Returns:
            True when the provider accepted the message, False otherwise
            (including when mail is not configured). Never raises.
        """
        if not self.is_available():
            logger.info("[mail] login email skipped (mail not configured) to=%s", email)
            return False

        payload = {
            "from": self.sender,
            "to": [email],
            "subject": SUBJECT,
            "html": self._render(email, user_name, temporary_password),
        }
        headers = {"Authorization": f"Bearer {self.api_key}", "Content-Type": "application/json"}
        try:
            async with httpx.AsyncClient(timeout=15) as client:
                resp = await client.post(self.api_url, headers=headers, json=payload)
                resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.error("[mail] login email failed to=%s: %s", email, e)
            return False

        logger.info("[mail] login email sent to=%s", email)
        return True


# Global singleton
login_mailer = LoginMailService()
