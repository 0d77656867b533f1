"""
Single sign-on API tests

The identity provider is an httpx.MockTransport answering the token and
userinfo endpoints.
"""
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from alumni.services.sso import sso_service
from tests.conftest import API, auth

IDP = "https://idp.example.com"
OIDC_SETTINGS = {
    "client_id": "alumni-app",
    "client_secret": "s3cret",
    "authorization_endpoint": f"{IDP}/authorize",
    "token_endpoint": f"{IDP}/token",
    "userinfo_endpoint": f"{IDP}/userinfo",
}


def identity_provider(claims, token_status=200):
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/token":
            if token_status != 200:
                return httpx.Response(token_status, json={"error": "invalid_grant"})
            return httpx.Response(200, json={"access_token": "idp-token", "token_type": "Bearer"})
        assert request.headers["Authorization"] == "Bearer idp-token"
        return httpx.Response(200, json=claims)
    return httpx.MockTransport(handler)


async def configure(client, admin, **overrides):
    data = {"name": "Campus login", "provider": "campus", "settings": OIDC_SETTINGS, **overrides}
    resp = await client.post(f"{API}/sso", json=data, headers=auth(admin))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


async def login_state(client, provider="campus"):
    resp = await client.get(f"{API}/sso/{provider}/login")
    assert resp.status_code == 200, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_configuration_management(client, tenant, admin, alumnus):
    resp = await client.get(f"{API}/sso", headers=auth(alumnus))
    assert resp.status_code == 403

    config = await configure(client, admin)
    # setting names only, never the values
    assert config["settings_configured"] == sorted(OIDC_SETTINGS)
    assert "settings" not in config

    resp = await client.post(f"{API}/sso", json={"name": "Again", "provider": "campus"}, headers=auth(admin))
    assert resp.status_code == 409

    resp = await client.patch(
        f"{API}/sso/{config['id']}", json={"settings": {"scope": "openid email"}}, headers=auth(admin)
    )
    assert "client_secret" in resp.json()["data"]["settings_configured"]
    assert "scope" in resp.json()["data"]["settings_configured"]

    resp = await client.post(f"{API}/sso/{config['id']}/test", headers=auth(admin))
    assert resp.json()["data"]["valid"] is True

    resp = await client.delete(f"{API}/sso/{config['id']}", headers=auth(admin))
    assert resp.status_code == 200
    resp = await client.get(f"{API}/sso", headers=auth(admin))
    assert resp.json()["data"] == []


@pytest.mark.asyncio
async def test_incomplete_configuration(client, tenant, admin):
    config = await configure(client, admin, provider="saml-idp", protocol="saml2", settings={"entity_id": "urn:x"})
    resp = await client.post(f"{API}/sso/{config['id']}/test", headers=auth(admin))
    result = resp.json()["data"]
    assert result["valid"] is False
    assert result["missing_settings"] == ["sso_url", "x509_certificate"]

    resp = await client.get(f"{API}/sso/saml-idp/login")
    assert resp.status_code == 400

    await configure(client, admin, provider="half", settings={"client_id": "x"})
    resp = await client.get(f"{API}/sso/half/login")
    assert resp.status_code == 422

    resp = await client.get(f"{API}/sso/unknown/login")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_login_url(client, tenant, admin):
    await configure(client, admin)
    login = await login_state(client)
    url = urlparse(login["url"])
    assert f"{url.scheme}://{url.netloc}{url.path}" == f"{IDP}/authorize"
    params = parse_qs(url.query)
    assert params["client_id"] == ["alumni-app"]
    assert params["scope"] == ["openid email profile"]
    assert params["state"] == [login["state"]]


@pytest.mark.asyncio
async def test_callback_provisions_new_user(client, tenant, admin, monkeypatch):
    monkeypatch.setattr(sso_service, "transport", identity_provider(
        {"sub": "u-42", "email": "New.Grad@Example.com", "name": "New Grad", "roles": ["staff"]}
    ))
    await configure(client, admin, role_mapping={"staff": "institution_admin"})
    login = await login_state(client)

    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": login["state"]})
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["message"] == "Account created"
    assert body["data"]["user"]["email"] == "New.Grad@example.com"
    assert body["data"]["user"]["role"] == "institution_admin"

    resp = await client.get(f"{API}/auth/me", headers={"Authorization": f"Bearer {body['data']['token']}"})
    assert resp.json()["data"]["name"] == "New Grad"

    # the state is single use
    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": login["state"]})
    assert resp.status_code == 400

    login = await login_state(client)
    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": login["state"]})
    assert resp.json()["message"] == "Signed in"


@pytest.mark.asyncio
async def test_callback_matches_existing_user_by_email(client, tenant, admin, alumnus, monkeypatch):
    monkeypatch.setattr(sso_service, "transport", identity_provider(
        {"sub": "u-7", "email": alumnus["user"]["email"]}
    ))
    await configure(client, admin, auto_provision=False)
    login = await login_state(client)

    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": login["state"]})
    assert resp.json()["data"]["user"]["id"] == alumnus["user"]["id"]


@pytest.mark.asyncio
async def test_callback_refusals(client, tenant, admin, monkeypatch):
    monkeypatch.setattr(sso_service, "transport", identity_provider({"sub": "u-9", "email": "stranger@example.com"}))
    await configure(client, admin, auto_provision=False)

    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": "forged"})
    assert resp.status_code == 400

    login = await login_state(client)
    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": login["state"]})
    assert resp.status_code == 403

    monkeypatch.setattr(sso_service, "transport", identity_provider({}, token_status=400))
    login = await login_state(client)
    resp = await client.post(f"{API}/sso/campus/callback", json={"code": "abc", "state": login["state"]})
    assert resp.status_code == 400
    assert resp.json()["message"] == "SSO authentication failed"
