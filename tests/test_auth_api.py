"""HTTP tests for the /auth routes."""
from urllib.parse import urlencode

from httpx import AsyncClient

from siwe_auth import config
from siwe_auth.nonce_store import nonce_key

from tests.conftest import GOOD_HOST, OTHER_PRIVATE_KEY, build_message, sign

VERIFY_URL = f"https://{GOOD_HOST}/auth/verify"


async def start_attempt(client: AsyncClient) -> dict:
    response = await client.get("/auth/authorize")
    assert response.status_code == 200
    assert config.ATTEMPT_COOKIE_NAME in response.cookies
    return response.json()


class TestAuthorize:
    async def test_issues_challenge_and_cookie(self, client: AsyncClient, store):
        challenge = await start_attempt(client)

        assert challenge["domain"] == GOOD_HOST
        assert challenge["uri"] == VERIFY_URL
        attempt_id = client.cookies[config.ATTEMPT_COOKIE_NAME]
        assert await store.get(nonce_key(attempt_id)) == challenge["nonce"]

    async def test_forwarded_host_is_presented(self, client: AsyncClient):
        response = await client.get("/auth/authorize", headers={"X-Forwarded-Host": "login.good.com"})
        body = response.json()
        assert body["domain"] == "login.good.com"
        assert body["uri"] == "https://login.good.com/auth/verify"


class TestVerifyQuery:
    async def test_end_to_end(self, client: AsyncClient, account, store):
        challenge = await start_attempt(client)
        attempt_id = client.cookies[config.ATTEMPT_COOKIE_NAME]
        assert await store.get(nonce_key(attempt_id)) == challenge["nonce"]
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])

        response = await client.get(
            "/auth/verify?" + urlencode({"message": message, "signature": sign(message)})
        )

        assert response.status_code == 200
        body = response.json()
        assert body["address"] == account.address
        assert body["token_type"] == "bearer"
        assert await store.get(nonce_key(attempt_id)) is None

        me = await client.get("/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json() == {"address": account.address}

    async def test_replay_is_rejected(self, client: AsyncClient, account):
        challenge = await start_attempt(client)
        attempt_id = client.cookies[config.ATTEMPT_COOKIE_NAME]
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])
        url = "/auth/verify?" + urlencode({"message": message, "signature": sign(message)})

        assert (await client.get(url)).status_code == 200
        # Put the old correlation cookie back to simulate a replaying client
        client.cookies.set(config.ATTEMPT_COOKIE_NAME, attempt_id, domain=GOOD_HOST)
        replay = await client.get(url)
        assert replay.status_code == 401
        assert replay.json()["code"] in ("missing_nonce", "invalid_nonce")

    async def test_missing_params(self, client: AsyncClient):
        await start_attempt(client)
        response = await client.get("/auth/verify?message=hello")
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_params"

    async def test_without_challenge(self, client: AsyncClient, account):
        message = build_message(account.address, "N1abcdef12", uri=VERIFY_URL)
        response = await client.get("/auth/verify?" + urlencode({"message": message, "signature": sign(message)}))
        assert response.status_code == 401
        assert response.json()["code"] == "missing_nonce"

    async def test_wrong_domain(self, client: AsyncClient, account):
        challenge = await start_attempt(client)
        message = build_message(account.address, challenge["nonce"], domain="evil.com", uri=challenge["uri"])
        response = await client.get("/auth/verify?" + urlencode({"message": message, "signature": sign(message)}))
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_domain"

    async def test_wrong_uri(self, client: AsyncClient, account):
        challenge = await start_attempt(client)
        message = build_message(account.address, challenge["nonce"], uri=f"https://{GOOD_HOST}/other")
        response = await client.get("/auth/verify?" + urlencode({"message": message, "signature": sign(message)}))
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_uri"

    async def test_malformed_message(self, client: AsyncClient):
        await start_attempt(client)
        response = await client.get("/auth/verify?" + urlencode({"message": "hello", "signature": "0xabc"}))
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_message"

    async def test_generic_errors_hide_code(self, client: AsyncClient, account, monkeypatch):
        monkeypatch.setattr(config, "SIWE_GENERIC_ERRORS", True)
        challenge = await start_attempt(client)
        message = build_message(account.address, challenge["nonce"], domain="evil.com", uri=challenge["uri"])
        response = await client.get("/auth/verify?" + urlencode({"message": message, "signature": sign(message)}))
        assert response.status_code == 401
        assert response.json() == {"detail": "Verification failed", "code": "verification_failed"}


class TestVerifyBody:
    async def test_end_to_end_with_stored_nonce(self, client: AsyncClient, account):
        challenge = await start_attempt(client)
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])
        response = await client.post("/auth/verify", json={"message": message, "signature": sign(message)})
        assert response.status_code == 200
        assert response.json()["address"] == account.address

    async def test_inline_nonce_fallback(self, client: AsyncClient, account, clock):
        message = build_message(account.address, "ClientNonce01", uri=VERIFY_URL)
        response = await client.post(
            "/auth/verify",
            json={
                "message": message,
                "signature": sign(message),
                "nonce": "ClientNonce01",
                "timestamp": int(clock() * 1000),
            },
        )
        assert response.status_code == 200
        assert response.json()["address"] == account.address

    async def test_expired_inline_nonce(self, client: AsyncClient, account, clock):
        message = build_message(account.address, "ClientNonce01", uri=VERIFY_URL)
        response = await client.post(
            "/auth/verify",
            json={
                "message": message,
                "signature": sign(message),
                "nonce": "ClientNonce01",
                "timestamp": int(clock() * 1000) - 600_001,
            },
        )
        assert response.status_code == 401
        assert response.json()["code"] == "expired_nonce"

    async def test_future_timestamp_is_rejected(self, client: AsyncClient, account, clock):
        message = build_message(account.address, "ClientNonce01", uri=VERIFY_URL)
        response = await client.post(
            "/auth/verify",
            json={
                "message": message,
                "signature": sign(message),
                "nonce": "ClientNonce01",
                "timestamp": int(clock() * 1000) + 10**12,
            },
        )
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_nonce"

    async def test_inline_nonce_is_single_use(self, client: AsyncClient, account, clock):
        message = build_message(account.address, "ClientNonce01", uri=VERIFY_URL)
        body = {
            "message": message,
            "signature": sign(message),
            "nonce": "ClientNonce01",
            "timestamp": int(clock() * 1000),
        }
        assert (await client.post("/auth/verify", json=body)).status_code == 200

        replay = await client.post("/auth/verify", json=body)
        assert replay.status_code == 401
        assert replay.json()["code"] == "invalid_nonce"

    async def test_stored_nonce_cannot_be_replayed_inline(self, client: AsyncClient, account, store, clock):
        challenge = await start_attempt(client)
        attempt_id = client.cookies[config.ATTEMPT_COOKIE_NAME]
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])
        signature = sign(message)
        first = await client.get("/auth/verify?" + urlencode({"message": message, "signature": signature}))
        assert first.status_code == 200
        assert await store.get(nonce_key(attempt_id)) is None

        replay = await client.post(
            "/auth/verify",
            json={
                "message": message,
                "signature": signature,
                "nonce": challenge["nonce"],
                "timestamp": int(clock() * 1000),
            },
        )
        assert replay.status_code == 401
        assert replay.json()["code"] == "invalid_nonce"

    async def test_stored_nonce_replay_after_window_is_expired(self, client: AsyncClient, account, clock):
        challenge = await start_attempt(client)
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])
        signature = sign(message)
        assert (await client.post("/auth/verify", json={"message": message, "signature": signature})).status_code == 200

        clock.advance(24 * 3600)
        replay = await client.post(
            "/auth/verify",
            json={
                "message": message,
                "signature": signature,
                "nonce": challenge["nonce"],
                "timestamp": int(clock() * 1000),
            },
        )
        assert replay.status_code == 401
        assert replay.json()["code"] == "expired_nonce"

    async def test_forged_signature(self, client: AsyncClient, account):
        challenge = await start_attempt(client)
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])
        response = await client.post(
            "/auth/verify",
            json={"message": message, "signature": sign(message, private_key=OTHER_PRIVATE_KEY)},
        )
        assert response.status_code == 401
        assert response.json()["code"] == "invalid_signature"

    async def test_empty_body_fields(self, client: AsyncClient):
        response = await client.post("/auth/verify", json={})
        assert response.status_code == 400
        assert response.json()["code"] == "invalid_params"


class TestSession:
    async def test_me_requires_token(self, client: AsyncClient):
        response = await client.get("/auth/me")
        assert response.status_code == 401

    async def test_me_rejects_bad_token(self, client: AsyncClient):
        response = await client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == 401

    async def test_missing_jwt_secret_fails_before_consuming(self, client: AsyncClient, account, store, monkeypatch):
        challenge = await start_attempt(client)
        attempt_id = client.cookies[config.ATTEMPT_COOKIE_NAME]
        monkeypatch.setattr(config, "JWT_SECRET_KEY", None)
        message = build_message(account.address, challenge["nonce"], uri=challenge["uri"])

        response = await client.post("/auth/verify", json={"message": message, "signature": sign(message)})

        assert response.status_code == 500
        assert await store.get(nonce_key(attempt_id)) == challenge["nonce"]


class TestHealth:
    async def test_root(self, client: AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"
