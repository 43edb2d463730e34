# caredoc/api/v1/routers/usage.py
from fastapi import APIRouter, Request

from caredoc.config import settings
from caredoc.core.rate_limit import AnonymousUsageLimiter, client_key
from caredoc.schemas.access import AnonymousUsageOut

router = APIRouter(prefix="/usage", tags=["usage"])

# Global singleton (per process, resets on restart)
anonymous_limiter = AnonymousUsageLimiter(
    settings.anonymous_free_limit, max_keys=settings.anonymous_max_tracked_clients
)


@router.post("/anonymous", response_model=AnonymousUsageOut)
async def consume_anonymous(request: Request):
    """
    Take one free generation for a visitor who is not logged in.

    Counted per client IP. Exhaustion is a 200 with allowed=false.
    """
    result = anonymous_limiter.consume(client_key(request))
    return AnonymousUsageOut(allowed=result.allowed, remaining=result.remaining, reason=result.reason)
