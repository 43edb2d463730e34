"""
Unit tests for core.rate_limit module.
"""
from starlette.requests import Request

from caredoc.core.rate_limit import AnonymousUsageLimiter, client_key


def _request(headers: dict[str, str] | None = None, client=("10.0.0.5", 5555)) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestAnonymousUsageLimiter:
    def test_quota_is_consumed_then_denied(self):
        limiter = AnonymousUsageLimiter(limit=2)
        first = limiter.consume("ip")
        second = limiter.consume("ip")
        third = limiter.consume("ip")

        assert (first.allowed, first.remaining) == (True, 1)
        assert (second.allowed, second.remaining) == (True, 0)
        assert third.allowed is False
        assert third.reason == AnonymousUsageLimiter.LIMIT_REACHED

    def test_keys_are_independent(self):
        limiter = AnonymousUsageLimiter(limit=1)
        assert limiter.consume("a").allowed is True
        assert limiter.consume("b").allowed is True
        assert limiter.consume("a").allowed is False
        assert limiter.remaining("c") == 1

    def test_reset_clears_counts(self):
        limiter = AnonymousUsageLimiter(limit=1)
        limiter.consume("a")
        limiter.reset()
        assert limiter.remaining("a") == 1

    def test_zero_limit_denies_everything(self):
        assert AnonymousUsageLimiter(limit=0).consume("a").allowed is False

    def test_tracked_clients_are_bounded(self):
        limiter = AnonymousUsageLimiter(limit=1, max_keys=3)
        for n in range(50):
            limiter.consume(f"10.0.0.{n}")
        assert limiter.tracked() == 3
        # Oldest clients are forgotten, the most recent keep their count
        assert limiter.remaining("10.0.0.0") == 1
        assert limiter.remaining("10.0.0.49") == 0

    def test_denied_client_stays_tracked(self):
        limiter = AnonymousUsageLimiter(limit=1, max_keys=2)
        limiter.consume("a")
        limiter.consume("b")
        assert limiter.consume("a").allowed is False
        limiter.consume("c")
        assert limiter.remaining("a") == 0
        assert limiter.remaining("b") == 1


class TestClientKey:
    def test_first_forwarded_hop_wins(self):
        req = _request({"X-Forwarded-For": "203.0.113.1, 10.0.0.1"})
        assert client_key(req) == "203.0.113.1"

    def test_falls_back_to_peer_address(self):
        assert client_key(_request()) == "10.0.0.5"

    def test_unknown_without_client(self):
        assert client_key(_request(client=None)) == "unknown"
