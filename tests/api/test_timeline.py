"""
Timeline API tests
"""
import pytest
from httpx import AsyncClient
from tests.conftest import API, DataFactory, auth


async def my_circle(client: AsyncClient, account: dict, circle_type: str = "school_year") -> str:
    response = await client.get(f"{API}/circles", params={"mine": True, "type": circle_type}, headers=auth(account))
    return response.json()["data"]["items"][0]["id"]


@pytest.mark.asyncio
async def test_timeline_collects_visible_posts(client: AsyncClient, factory: DataFactory, alumnus: dict):
    classmate = await factory.register()
    outsider = await factory.register(graduation_year=1995, location="Oslo")
    circle_id = await my_circle(client, alumnus)

    circle_post = await factory.create_post(classmate, visibility="circles", circle_ids=[circle_id])
    public_post = await factory.create_post(outsider)
    private_post = await factory.create_post(classmate, visibility="private")

    response = await client.get(f"{API}/timeline", headers=auth(alumnus))
    assert response.status_code == 200
    timeline = response.json()["data"]
    ids = [p["id"] for p in timeline["posts"]]
    assert circle_post["id"] in ids
    assert public_post["id"] in ids
    assert private_post["id"] not in ids
    assert all(p["score"] is not None for p in timeline["posts"])
    assert timeline["has_more"] is False

    # the circle post is invisible outside the circle
    response = await client.get(f"{API}/timeline", headers=auth(outsider))
    assert circle_post["id"] not in [p["id"] for p in response.json()["data"]["posts"]]


@pytest.mark.asyncio
async def test_timeline_pagination(client: AsyncClient, factory: DataFactory, alumnus: dict):
    author = await factory.register()
    circle_id = await my_circle(client, author)
    for _ in range(3):
        await factory.create_post(author, visibility="circles", circle_ids=[circle_id])

    response = await client.get(f"{API}/timeline", params={"limit": 2}, headers=auth(alumnus))
    first = response.json()["data"]
    assert len(first["posts"]) == 2
    assert first["has_more"] is True

    response = await client.get(
        f"{API}/timeline/more", params={"cursor": first["next_cursor"], "limit": 2}, headers=auth(alumnus)
    )
    second = response.json()["data"]
    assert len(second["posts"]) >= 1
    assert not {p["id"] for p in first["posts"]} & {p["id"] for p in second["posts"]}

    response = await client.get(f"{API}/timeline/more", params={"cursor": "@@@"}, headers=auth(alumnus))
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_timeline_cache_and_refresh(client: AsyncClient, factory: DataFactory, alumnus: dict):
    stranger = await factory.register(graduation_year=1980, location="Quito")

    response = await client.get(f"{API}/timeline", headers=auth(alumnus))
    assert response.json()["data"]["posts"] == []

    # a public post by someone unrelated does not touch my cached page
    post = await factory.create_post(stranger)
    response = await client.get(f"{API}/timeline", headers=auth(alumnus))
    assert response.json()["data"]["posts"] == []

    response = await client.post(f"{API}/timeline/refresh", headers=auth(alumnus))
    assert [p["id"] for p in response.json()["data"]["posts"]] == [post["id"]]


@pytest.mark.asyncio
async def test_circle_and_group_timelines(client: AsyncClient, factory: DataFactory, alumnus: dict):
    outsider = await factory.register(graduation_year=1970, location="Cairo")
    circle_id = await my_circle(client, alumnus)
    group = await factory.create_group(alumnus)

    await factory.create_post(alumnus, visibility="circles", circle_ids=[circle_id])
    await factory.create_post(alumnus, visibility="groups", group_ids=[group["id"]])

    response = await client.get(f"{API}/circles/{circle_id}/timeline", headers=auth(alumnus))
    assert len(response.json()["data"]["posts"]) == 1
    response = await client.get(f"{API}/circles/{circle_id}/timeline", headers=auth(outsider))
    assert response.status_code == 403

    response = await client.get(f"{API}/groups/{group['id']}/timeline", headers=auth(alumnus))
    assert len(response.json()["data"]["posts"]) == 1
    response = await client.get(f"{API}/groups/{group['id']}/timeline", headers=auth(outsider))
    assert response.status_code == 403
