"""
Integration tests for the download token endpoints.

These tests drive the full HTTP flow:
- Issue a token, redeem it once, and get 404 on replay
- Expired tokens return 410 once, then 404
- Tokens are bound to the user they were issued to
- Responses carry attachment and anti-caching headers
- Upstream failures surface as 502 and still consume the token
"""

from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from studymate.models import DownloadRecord, DownloadToken, Material
from studymate.models.base import utc_now

from conftest import MATERIAL_BYTES, MATERIAL_URL

API = "/api/v1"


async def issue_token(client, material_id: str, headers: dict) -> dict:
    response = await client.post(f"{API}/materials/{material_id}/download", headers=headers)
    assert response.status_code == 200, response.text
    return response.json()


async def expire_token(db, token: str) -> None:
    await db.execute(
        update(DownloadToken)
        .where(DownloadToken.token == token)
        .values(expires_at=utc_now() - timedelta(seconds=1))
    )
    await db.commit()


class TestIssueEndpoint:

    @pytest.mark.asyncio
    async def test_issue_returns_token_and_download_url(self, client, material, alice_headers):
        material_id = material.id

        body = await issue_token(client, material_id, alice_headers)

        assert body["success"] is True
        assert body["material_id"] == material_id
        assert body["download_url"] == f"{API}/downloads/secure/{body['token']}"
        assert "expires_at" in body
        assert MATERIAL_URL not in str(body)

    @pytest.mark.asyncio
    async def test_issue_increments_counter(self, client, db_session, material, alice_headers, bob_headers):
        material_id = material.id

        await issue_token(client, material_id, alice_headers)
        await issue_token(client, material_id, bob_headers)
        await issue_token(client, material_id, alice_headers)

        downloads = await db_session.scalar(
            select(Material.downloads).where(Material.id == material_id)
        )
        records = await db_session.scalar(select(func.count()).select_from(DownloadRecord))
        assert downloads == 3
        assert records == 3

    @pytest.mark.asyncio
    async def test_issue_requires_authentication(self, client, material):
        response = await client.post(f"{API}/materials/{material.id}/download")

        assert response.status_code == 401
        assert response.json()["code"] == "AUTH_1001"

    @pytest.mark.asyncio
    async def test_issue_unknown_material(self, client, alice_headers):
        response = await client.post(f"{API}/materials/does-not-exist/download", headers=alice_headers)

        assert response.status_code == 404
        assert response.json()["code"] == "RES_4001"

    @pytest.mark.asyncio
    async def test_issue_without_provider_profile(self, client, identity_provider, material):
        from studymate.services.identity import Principal

        headers = identity_provider.register(Principal(user_id="user_noprofile"))

        response = await client.post(f"{API}/materials/{material.id}/download", headers=headers)

        assert response.status_code == 404
        assert response.json()["message"] == "User not found"


class TestSecureDownloadEndpoint:

    @pytest.mark.asyncio
    async def test_full_lifecycle(self, client, db_session, material, alice_headers):
        material_id = material.id

        # Issue and redeem
        first = await issue_token(client, material_id, alice_headers)
        response = await client.get(first["download_url"], headers=alice_headers)
        assert response.status_code == 200
        assert response.content == MATERIAL_BYTES

        # Replay
        replay = await client.get(first["download_url"], headers=alice_headers)
        assert replay.status_code == 404

        # Expired token: 410 once, then gone for good
        second = await issue_token(client, material_id, alice_headers)
        await expire_token(db_session, second["token"])

        expired = await client.get(second["download_url"], headers=alice_headers)
        assert expired.status_code == 410
        assert expired.json()["code"] == "DL_4102"

        again = await client.get(second["download_url"], headers=alice_headers)
        assert again.status_code == 404

        downloads = await db_session.scalar(
            select(Material.downloads).where(Material.id == material_id)
        )
        assert downloads == 2

    @pytest.mark.asyncio
    async def test_response_headers(self, client, material, alice_headers):
        body = await issue_token(client, material.id, alice_headers)

        response = await client.get(body["download_url"], headers=alice_headers)

        assert response.status_code == 200
        assert response.headers["content-type"] == "application/pdf"
        assert response.headers["content-disposition"] == (
            'attachment; filename="Data Structures Unit 1.pdf"'
        )
        assert response.headers["content-length"] == str(len(MATERIAL_BYTES))
        assert "no-store" in response.headers["cache-control"]
        assert response.headers["referrer-policy"] == "no-referrer"
        assert response.headers["x-content-type-options"] == "nosniff"

    @pytest.mark.asyncio
    async def test_stream_is_closed_after_response(self, client, blob_store, material, alice_headers):
        body = await issue_token(client, material.id, alice_headers)

        await client.get(body["download_url"], headers=alice_headers)

        assert len(blob_store.streams) == 1
        assert blob_store.streams[0].closed is True

    @pytest.mark.asyncio
    async def test_other_user_is_forbidden_and_token_survives(
        self, client, blob_store, material, alice_headers, bob_headers
    ):
        body = await issue_token(client, material.id, alice_headers)

        stolen = await client.get(body["download_url"], headers=bob_headers)
        assert stolen.status_code == 403
        assert stolen.json()["code"] == "DL_4101"
        assert blob_store.opened == []

        owner = await client.get(body["download_url"], headers=alice_headers)
        assert owner.status_code == 200
        assert owner.content == MATERIAL_BYTES

    @pytest.mark.asyncio
    async def test_redeem_requires_authentication(self, client, material, alice_headers):
        body = await issue_token(client, material.id, alice_headers)

        response = await client.get(body["download_url"])

        assert response.status_code == 401

        # Unauthenticated attempts don't consume the token
        owner = await client.get(body["download_url"], headers=alice_headers)
        assert owner.status_code == 200

    @pytest.mark.asyncio
    async def test_unknown_token_error_does_not_echo_token(self, client, alice_headers):
        token = "Zq3vK9_xT-2mP8rLwY5nB1cD4eF6gH7iJ0kA3sU9oVw"

        response = await client.get(f"{API}/downloads/secure/{token}", headers=alice_headers)

        assert response.status_code == 404
        assert token not in response.text
        assert response.headers["referrer-policy"] == "no-referrer"

    @pytest.mark.asyncio
    async def test_upstream_failure_returns_502_and_consumes_token(
        self, client, blob_store, material, alice_headers
    ):
        blob_store.fail(MATERIAL_URL)
        body = await issue_token(client, material.id, alice_headers)

        response = await client.get(body["download_url"], headers=alice_headers)
        assert response.status_code == 502
        assert response.json()["code"] == "DL_5201"
        assert MATERIAL_URL not in response.text

        retry = await client.get(body["download_url"], headers=alice_headers)
        assert retry.status_code == 404
