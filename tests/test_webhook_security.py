import uuid

import pytest
import redis
from fastapi import HTTPException, Request

from clinvia import rate_limiter
from clinvia.shared.validators import digits_only, strip_jid, validate_webhook_payload
from clinvia.webhook_security import compute_hmac_sha256, create_webhook_signature, verify_signature


class InMemoryRedis:
    """Just the calls the rate limiter makes"""

    def __init__(self):
        self.values = {}

    def get(self, key):
        return self.values.get(key)

    def ttl(self, key):
        return 60 if key in self.values else -2

    def set(self, key, value, ex=None):
        self.values[key] = value


def test_signature_accepts_prefixed_and_bare_hex():
    body = b'{"event":"messages"}'
    digest = compute_hmac_sha256("secret", body)

    assert verify_signature(body, f"sha256={digest}", "secret")
    assert verify_signature(body, digest.upper(), "secret")
    assert create_webhook_signature("secret", body) == f"sha256={digest}"


def test_signature_rejects_tampering():
    body = b'{"event":"messages"}'
    signature = create_webhook_signature("secret", body)

    assert not verify_signature(b'{"event":"other"}', signature, "secret")
    assert not verify_signature(body, signature, "other-secret")
    assert not verify_signature(body, None, "secret")
    assert not verify_signature(body, signature, "")


def test_rate_limit_allows_up_to_limit():
    redis = InMemoryRedis()
    key = f"test:{uuid.uuid4()}"

    assert rate_limiter.check_rate_limit(key, 2, 60, redis)[0] is True
    assert rate_limiter.check_rate_limit(key, 2, 60, redis)[0] is True
    allowed, count, ttl = rate_limiter.check_rate_limit(key, 2, 60, redis)
    assert allowed is False
    assert count == 2
    assert 0 < ttl <= 60


def test_rate_limit_resumes_from_redis_count():
    redis = InMemoryRedis()
    key = f"test:{uuid.uuid4()}"
    redis.set(key, "5")

    allowed, count, _ = rate_limiter.check_rate_limit(key, 5, 60, redis)
    assert allowed is False
    assert count == 5


def test_rate_limit_counts_in_memory_without_redis():
    key = f"test:{uuid.uuid4()}"

    assert rate_limiter.check_rate_limit(key, 1, 60, None)[0] is True
    allowed, count, _ = rate_limiter.check_rate_limit(key, 1, 60, None)
    assert allowed is False
    assert count == 1


async def test_rate_limit_dependency_allows_when_redis_is_down(monkeypatch):
    def unreachable():
        raise redis.ConnectionError("Connection refused")

    monkeypatch.setattr(rate_limiter, "get_redis_client", unreachable)
    request = Request({"type": "http", "method": "POST", "path": "/", "headers": [], "client": ("10.0.0.9", 5000)})
    key_prefix = f"webhook-{uuid.uuid4()}"

    await rate_limiter.rate_limit_dependency(request, 2, 60, key_prefix)
    await rate_limiter.rate_limit_dependency(request, 2, 60, key_prefix)
    assert request.state.rate_limit_remaining == 0

    with pytest.raises(HTTPException) as exc:
        await rate_limiter.rate_limit_dependency(request, 2, 60, key_prefix)
    assert exc.value.status_code == 429
    assert exc.value.headers["Retry-After"]


@pytest.mark.parametrize(
    "payload, error",
    [
        ([], "Payload must be a JSON object"),
        ({"instanceName": 42}, "instanceName must be a string"),
        ({"instanceName": "x" * 101}, "instanceName exceeds 100 characters"),
        ({"instanceName": "a|b"}, "instanceName contains invalid characters"),
        ({"message": {"text": "x" * 50_001}}, "message text exceeds 50000 characters"),
    ],
)
def test_webhook_payload_validation(payload, error):
    assert validate_webhook_payload(payload) == [error]


def test_phone_helpers():
    assert digits_only("+55 (11) 99999-0000") == "5511999990000"
    assert digits_only(None) == ""
    assert strip_jid("5511999990000@s.whatsapp.net") == "5511999990000"
    assert strip_jid("5511999990000") == "5511999990000"
