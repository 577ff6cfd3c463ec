import jwt
import pytest


SECRET = "test-secret-that-is-long-enough-for-hs256"


@pytest.fixture
def auth_headers(monkeypatch):
    monkeypatch.setenv("CRM_JWT_SECRET", SECRET)

    def _headers(owner_id=1):
        token = jwt.encode({"id": owner_id}, SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}

    return _headers
