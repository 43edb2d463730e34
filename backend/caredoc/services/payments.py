"""
Payment Provider Service (Stripe)

Thin async facade over the stripe SDK:
- webhook signature verification
- customer / subscription lookups used by the webhook reconciler
- checkout and billing-portal session creation
The SDK is synchronous, so network calls run in a worker thread.
"""
import asyncio
import json
import logging
from typing import Any, Optional

import stripe

from ..config import settings
from ..core.errors import UpstreamPaymentError

logger = logging.getLogger("uvicorn.error")
logging.getLogger("stripe").setLevel(logging.WARNING)


class PaymentService:
    """Stripe client wrapper"""

    def __init__(self):
        self.api_key = settings.stripe_secret_key
        self.webhook_secret = settings.stripe_webhook_secret
        self.timeout = settings.stripe_timeout_sec

    def is_available(self) -> bool:
        """Check if the secret API key is configured"""
        return bool(self.api_key)

    def _require_key(self) -> str:
        if not self.api_key:
            raise UpstreamPaymentError("STRIPE_SECRET_KEY is not configured")
        stripe.max_network_retries = 1
        return self.api_key

    def construct_event(self, payload: bytes, signature: Optional[str]) -> Any:
        """
        Verify the Stripe-Signature header and return the event as a plain dict.

        Raises:
            stripe.SignatureVerificationError: bad or missing signature
            ValueError: payload is not valid JSON
        """
        if not self.webhook_secret:
            raise stripe.SignatureVerificationError("webhook secret is not configured", signature)
        stripe.Webhook.construct_event(payload, signature or "", self.webhook_secret)
        return json.loads(payload)

    async def _call(self, fn, *args, **kwargs):
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except stripe.StripeError as e:
            logger.error("[payments] stripe call %s failed: %s", getattr(fn, "__qualname__", fn), e)
            raise UpstreamPaymentError(f"payment provider error: {e.user_message or e}") from e

    async def retrieve_customer_email(self, customer_id: Optional[str]) -> Optional[str]:
        if not customer_id:
            return None
        customer = await self._call(stripe.Customer.retrieve, customer_id, api_key=self._require_key())
        if customer.get("deleted"):
            return None
        return customer.get("email")

    async def retrieve_subscription(self, subscription_id: str) -> Any:
        return await self._call(stripe.Subscription.retrieve, subscription_id, api_key=self._require_key())

    async def create_checkout_session(
        self,
        *,
        email: str,
        product_code: str,
        user_id: str,
        price_id: str,
        trial_days: Optional[int],
    ) -> str:
        """Create a subscription checkout session and return its hosted URL."""
        metadata = {"product_code": product_code, "user_id": user_id}
        subscription_data: dict = {"metadata": metadata}
        if trial_days:
            subscription_data["trial_period_days"] = trial_days
        base = settings.app_base_url.rstrip("/")
        session = await self._call(
            stripe.checkout.Session.create,
            api_key=self._require_key(),
            mode="subscription",
            customer_email=email,
            line_items=[{"price": price_id, "quantity": 1}],
            subscription_data=subscription_data,
            metadata=metadata,
            client_reference_id=user_id,
            success_url=f"{base}/thanks.html",
            cancel_url=f"{base}/lp.html",
        )
        return session.get("url")

    async def create_portal_session(self, customer_id: str) -> str:
        base = settings.app_base_url.rstrip("/")
        session = await self._call(
            stripe.billing_portal.Session.create,
            api_key=self._require_key(),
            customer=customer_id,
            return_url=f"{base}/app.html",
        )
        return session.get("url")


# Global singleton
payment_service = PaymentService()
