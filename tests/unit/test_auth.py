"""Tests for JWT issuance and rate limiting."""

from __future__ import annotations

import time

import jwt
import pytest

from campus_rag.api.auth import issue_token
from campus_rag.api.rate_limiter import SlidingWindowRateLimiter


def test_issued_token_carries_user_id(settings):
    token = issue_token("student-001", settings)
    decoded = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    assert decoded["sub"] == "student-001"
    assert decoded["exp"] - decoded["iat"] == settings.jwt_expiry_minutes * 60


def test_jwt_expired():
    secret = "test-secret"
    payload = {"sub": "u1", "iat": int(time.time()) - 7200, "exp": int(time.time()) - 3600}
    token = jwt.encode(payload, secret, algorithm="HS256")
    with pytest.raises(jwt.ExpiredSignatureError):
        jwt.decode(token, secret, algorithms=["HS256"])


def test_jwt_invalid_secret(settings):
    token = issue_token("u1", settings)
    with pytest.raises(jwt.InvalidSignatureError):
        jwt.decode(token, "wrong-secret", algorithms=["HS256"])


def test_rate_limiter_allows_up_to_limit():
    limiter = SlidingWindowRateLimiter()
    for _ in range(5):
        assert limiter.check("u1", max_requests=5) is True
    assert limiter.check("u1", max_requests=5) is False


def test_rate_limiter_separate_keys():
    limiter = SlidingWindowRateLimiter()
    for _ in range(5):
        limiter.check("u1", max_requests=5)
    assert limiter.check("u1", max_requests=5) is False
    assert limiter.check("u2", max_requests=5) is True


def test_rate_limiter_window_expires():
    limiter = SlidingWindowRateLimiter()
    assert limiter.check("u1", max_requests=1, window_seconds=0) is True
    assert limiter.check("u1", max_requests=1, window_seconds=0) is True
