# caredoc/schemas/billing.py
from pydantic import BaseModel


class CheckoutIn(BaseModel):
    productCode: str


class RedirectOut(BaseModel):
    url: str  # Hosted Stripe page to redirect the browser to
