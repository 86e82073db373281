import jwt
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from src.assistant.api.main import app
from src.assistant.security.auth import InvalidToken, JwtConfig, Principal, create_access_token, decode_token
from src.assistant.security.rbac import Permission, is_authorized

from tests.utils import principal


client = TestClient(app)


def test_token_round_trip_carries_tenant():
    cfg = JwtConfig(secret="unit-test-secret")
    token = create_access_token(Principal(user_id="u1", tenant_id="t1", roles=["viewer"]), cfg)
    p = decode_token(token, cfg)
    assert (p.user_id, p.tenant_id, p.roles) == ("u1", "t1", ["viewer"])


def test_token_without_tenant_is_rejected():
    cfg = JwtConfig(secret="unit-test-secret")
    token = jwt.encode({"sub": "u1"}, cfg.secret, algorithm=cfg.algorithm)
    with pytest.raises(InvalidToken):
        decode_token(token, cfg)


def test_decode_token_expired():
    cfg = JwtConfig(secret="unit-test-secret", expires_min=1)
    now = datetime.now(timezone.utc)
    payload = {
        "sub": "user@example.com",
        "tenant_id": "t1",
        "iat": int((now - timedelta(minutes=10)).timestamp()),
        "exp": int((now - timedelta(minutes=5)).timestamp()),
    }
    token = jwt.encode(payload, cfg.secret, algorithm=cfg.algorithm)
    with pytest.raises(InvalidToken) as exc:
        decode_token(token, cfg=cfg)
    assert "expired" in str(exc.value).lower()


def test_single_role_claim_is_not_split_into_characters():
    cfg = JwtConfig(secret="unit-test-secret")
    token = jwt.encode({"sub": "u1", "tenant_id": "t1", "roles": "admin"}, cfg.secret, algorithm=cfg.algorithm)
    p = decode_token(token, cfg)
    assert p.roles == ["admin"]
    assert is_authorized(p, Permission.ADMIN)


def test_empty_roles_claim_defaults_to_contributor():
    cfg = JwtConfig(secret="unit-test-secret")
    token = jwt.encode({"sub": "u1", "tenant_id": "t1", "roles": []}, cfg.secret, algorithm=cfg.algorithm)
    assert decode_token(token, cfg).roles == ["contributor"]


def test_invalid_token_in_non_public_mode(monkeypatch):
    monkeypatch.setenv("ASSISTANT_PUBLIC_MODE", "false")
    r = client.post(
        "/assistant/chat",
        json={"messages": [{"role": "user", "content": "hi"}]},
        headers={"Authorization": "Bearer not-a-real-token"},
    )
    assert r.status_code == 401


def test_role_permissions():
    assert is_authorized(principal(roles=("contributor",)), Permission.DATA_WRITE)
    assert not is_authorized(principal(roles=("viewer",)), Permission.DATA_WRITE)
    assert is_authorized(principal(roles=("viewer",)), Permission.AUDIT_READ)
    assert is_authorized(principal(roles=("admin",)), Permission.DATA_WRITE)
    assert not is_authorized(principal(roles=("stranger",)), Permission.ASSISTANT_CHAT)
    assert not is_authorized(None, Permission.ASSISTANT_CHAT)
