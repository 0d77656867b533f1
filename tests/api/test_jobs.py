"""
Job board, application and matching API tests
"""
import pytest
from httpx import AsyncClient
from tests.conftest import API, DataFactory, auth


@pytest.fixture
def employer_factory(factory: DataFactory, admin: dict):
    async def create(**overrides) -> dict:
        account = await factory.register(**overrides)
        return await factory.set_role(admin, account, "employer")
    return create


@pytest.mark.asyncio
async def test_only_employers_post_jobs(client: AsyncClient, factory: DataFactory, alumnus: dict, employer_factory):
    response = await client.post(
        f"{API}/jobs", json={"title": "Analyst", "company_name": "Acme"}, headers=auth(alumnus)
    )
    assert response.status_code == 403

    employer = await employer_factory()
    job = await factory.create_job(employer)
    assert job["status"] == "active"
    assert job["posted_by"] == employer["user"]["id"]


@pytest.mark.asyncio
async def test_job_listing_and_close(client: AsyncClient, factory: DataFactory, alumnus: dict, employer_factory):
    employer = await employer_factory()
    job = await factory.create_job(employer, title="Data Scientist", employment_type="contract")
    await factory.create_job(employer, title="Office Manager")

    response = await client.get(f"{API}/jobs", params={"search": "data"}, headers=auth(alumnus))
    assert [j["id"] for j in response.json()["data"]["items"]] == [job["id"]]

    response = await client.get(f"{API}/jobs", params={"employment_type": "contract"}, headers=auth(alumnus))
    assert response.json()["data"]["total"] == 1

    response = await client.delete(f"{API}/jobs/{job['id']}", headers=auth(alumnus))
    assert response.status_code == 403
    response = await client.delete(f"{API}/jobs/{job['id']}", headers=auth(employer))
    assert response.status_code == 200

    response = await client.get(f"{API}/jobs/{job['id']}", headers=auth(alumnus))
    assert response.json()["data"]["status"] == "closed"


@pytest.mark.asyncio
async def test_application_flow(client: AsyncClient, factory: DataFactory, alumnus: dict, employer_factory):
    employer = await employer_factory()
    job = await factory.create_job(employer)
    url = f"{API}/jobs/{job['id']}"

    response = await client.post(f"{url}/apply", json={"cover_letter": "I love APIs"}, headers=auth(alumnus))
    assert response.status_code == 201
    application = response.json()["data"]
    assert application["status"] == "pending"

    response = await client.post(f"{url}/apply", json={}, headers=auth(alumnus))
    assert response.status_code == 409

    response = await client.get(f"{url}/applications", headers=auth(alumnus))
    assert response.status_code == 403
    response = await client.get(f"{url}/applications", headers=auth(employer))
    items = response.json()["data"]["items"]
    assert items[0]["applicant"]["id"] == alumnus["user"]["id"]

    response = await client.patch(
        f"{url}/applications/{application['id']}", json={"status": "interviewing"}, headers=auth(employer)
    )
    assert response.json()["data"]["status"] == "interviewing"

    response = await client.get(url, headers=auth(alumnus))
    assert response.json()["data"]["application_count"] == 1

    await client.delete(url, headers=auth(employer))
    other = await factory.register()
    response = await client.post(f"{url}/apply", json={}, headers=auth(other))
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_matches_generated_for_job_seekers(
    client: AsyncClient, factory: DataFactory, admin: dict, alumnus: dict, employer_factory
):
    await client.patch(f"{API}/users/me", json={"job_search_active": True}, headers=auth(alumnus))
    idle = await factory.register()
    employer = await employer_factory()
    job = await factory.create_job(employer)

    response = await client.get(f"{API}/jobs/{job['id']}/matches", headers=auth(employer))
    assert response.status_code == 200
    matches = response.json()["data"]
    assert [m["user_id"] for m in matches] == [alumnus["user"]["id"]]
    assert idle["user"]["id"] not in [m["user_id"] for m in matches]
    match = matches[0]
    assert match["overall_score"] >= 30
    assert match["match_factors"]["skills_match"]["exact_matches"] == ["python", "sql"]
    assert match["compatibility_factors"]["active_job_seeker"] is True

    response = await client.get(f"{API}/jobs/recommendations", headers=auth(alumnus))
    recommended = response.json()["data"]
    assert recommended[0]["job"]["id"] == job["id"]
    assert recommended[0]["match"]["is_recommended"] is True

    response = await client.post(f"{API}/matches/{match['id']}/view", headers=auth(alumnus))
    assert response.json()["data"]["is_viewed"] is True
    response = await client.post(f"{API}/matches/{match['id']}/view", headers=auth(employer))
    assert response.status_code == 404

    await client.post(f"{API}/jobs/{job['id']}/apply", json={}, headers=auth(alumnus))

    response = await client.get(f"{API}/matching/statistics", headers=auth(admin))
    stats = response.json()["data"]
    assert stats["total_matches"] == 1
    assert stats["recommended_matches"] == 1
    assert stats["applied_matches"] == 1
    assert stats["success_rate"] == 100.0

    response = await client.get(f"{API}/matching/statistics", headers=auth(alumnus))
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_network_match_score(client: AsyncClient, factory: DataFactory, alumnus: dict, employer_factory):
    insider = await factory.register(current_company="Acme", current_title="Senior Engineer")
    response = await client.post(f"{API}/connections", json={"user_id": insider["user"]["id"]}, headers=auth(alumnus))
    await client.post(f"{API}/connections/{response.json()['data']['id']}/accept", headers=auth(insider))

    employer = await employer_factory()
    job = await factory.create_job(employer)

    response = await client.get(f"{API}/jobs/{job['id']}/match-score", headers=auth(alumnus))
    assert response.status_code == 200
    score = response.json()["data"]
    assert score["mutual_connections_count"] == 1
    # one senior connection: 20 + 10
    assert score["connection_score"] == 30
    assert score["skills_score"] == 100
    assert score["reasons"][0]["type"] == "skills"
    assert score["calculated_at"] is not None
