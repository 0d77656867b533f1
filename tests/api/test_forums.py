"""
Forum API tests
"""
import pytest

from tests.conftest import API, auth


async def start_topic(client, forum, account, **overrides):
    data = {"title": "Interview tips", "content": "What worked for you?", **overrides}
    resp = await client.post(f"{API}/forums/{forum['id']}/topics", json=data, headers=auth(account))
    assert resp.status_code == 201, resp.text
    return resp.json()["data"]


@pytest.mark.asyncio
async def test_only_admins_create_forums(client, factory, admin, alumnus):
    resp = await client.post(f"{API}/forums", json={"name": "Off topic"}, headers=auth(alumnus))
    assert resp.status_code == 403

    resp = await client.post(f"{API}/forums", json={"name": "Off topic", "group_id": "missing"}, headers=auth(admin))
    assert resp.status_code == 422

    await factory.create_forum(admin)
    await factory.create_forum(admin, category="reunions")
    resp = await client.get(f"{API}/forums", params={"category": "careers"}, headers=auth(alumnus))
    assert len(resp.json()["data"]) == 1


@pytest.mark.asyncio
async def test_topic_and_replies(client, factory, admin, alumnus):
    forum = await factory.create_forum(admin)
    topic = await start_topic(client, forum, alumnus, tags=["interviews"])
    assert topic["is_subscribed"] is True
    assert topic["author"]["id"] == alumnus["user"]["id"]

    replier = await factory.register()
    url = f"{API}/forums/topics/{topic['id']}/replies"
    resp = await client.post(url, json={"content": "Practice out loud"}, headers=auth(replier))
    assert resp.status_code == 201
    first = resp.json()["data"]

    resp = await client.post(url, json={"content": "Agreed", "parent_id": first["id"]}, headers=auth(alumnus))
    assert resp.status_code == 201
    resp = await client.post(url, json={"content": "Orphan", "parent_id": "missing"}, headers=auth(alumnus))
    assert resp.status_code == 422

    resp = await client.get(f"{API}/forums/topics/{topic['id']}", headers=auth(replier))
    data = resp.json()["data"]
    assert data["topic"]["replies_count"] == 2
    assert data["topic"]["views_count"] == 1
    assert data["topic"]["is_subscribed"] is True
    assert [r["content"] for r in data["replies"]] == ["Practice out loud", "Agreed"]

    resp = await client.get(f"{API}/forums", headers=auth(alumnus))
    assert resp.json()["data"][0]["topics_count"] == 1


@pytest.mark.asyncio
async def test_pinned_topics_come_first(client, factory, admin, alumnus):
    forum = await factory.create_forum(admin)
    pinned = await start_topic(client, forum, alumnus, title="House rules")
    await start_topic(client, forum, alumnus, title="Newest topic")

    resp = await client.patch(f"{API}/forums/topics/{pinned['id']}", json={"is_pinned": True}, headers=auth(alumnus))
    assert resp.status_code == 403
    resp = await client.patch(f"{API}/forums/topics/{pinned['id']}", json={"is_pinned": True}, headers=auth(admin))
    assert resp.status_code == 200

    resp = await client.get(f"{API}/forums/{forum['id']}/topics", headers=auth(alumnus))
    titles = [t["title"] for t in resp.json()["data"]["items"]]
    assert titles == ["House rules", "Newest topic"]


@pytest.mark.asyncio
async def test_locked_topic_refuses_replies(client, factory, admin, alumnus):
    forum = await factory.create_forum(admin)
    topic = await start_topic(client, forum, alumnus)
    await client.patch(f"{API}/forums/topics/{topic['id']}", json={"is_locked": True}, headers=auth(admin))

    resp = await client.post(
        f"{API}/forums/topics/{topic['id']}/replies", json={"content": "Too late"}, headers=auth(alumnus)
    )
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_edit_and_delete_by_author(client, factory, admin, alumnus):
    forum = await factory.create_forum(admin)
    topic = await start_topic(client, forum, alumnus)
    stranger = await factory.register()

    resp = await client.patch(f"{API}/forums/topics/{topic['id']}", json={"title": "Hijacked"}, headers=auth(stranger))
    assert resp.status_code == 403
    resp = await client.patch(
        f"{API}/forums/topics/{topic['id']}", json={"title": "Interview tips 2026"}, headers=auth(alumnus)
    )
    assert resp.json()["data"]["title"] == "Interview tips 2026"

    resp = await client.delete(f"{API}/forums/topics/{topic['id']}", headers=auth(stranger))
    assert resp.status_code == 403
    resp = await client.delete(f"{API}/forums/topics/{topic['id']}", headers=auth(alumnus))
    assert resp.status_code == 200
    resp = await client.get(f"{API}/forums/topics/{topic['id']}", headers=auth(alumnus))
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_subscription_toggle(client, factory, admin, alumnus):
    forum = await factory.create_forum(admin)
    topic = await start_topic(client, forum, alumnus)
    url = f"{API}/forums/topics/{topic['id']}/subscribe"

    resp = await client.post(url, headers=auth(alumnus))
    assert resp.json()["data"]["subscribed"] is False
    resp = await client.post(url, headers=auth(alumnus))
    assert resp.json()["data"]["subscribed"] is True


@pytest.mark.asyncio
async def test_group_forum_is_for_members(client, factory, admin, alumnus):
    group = await factory.create_group(alumnus)
    forum = await factory.create_forum(admin, group_id=group["id"])
    outsider = await factory.register()

    resp = await client.get(f"{API}/forums", headers=auth(outsider))
    assert resp.json()["data"] == []
    resp = await client.get(f"{API}/forums/{forum['id']}/topics", headers=auth(outsider))
    assert resp.status_code == 403

    topic = await start_topic(client, forum, alumnus)
    resp = await client.get(f"{API}/forums/topics/{topic['id']}", headers=auth(outsider))
    assert resp.status_code == 403

    resp = await client.post(f"{API}/groups/{group['id']}/join", headers=auth(outsider))
    assert resp.status_code == 200
    resp = await client.get(f"{API}/forums/{forum['id']}/topics", headers=auth(outsider))
    assert resp.json()["data"]["total"] == 1
