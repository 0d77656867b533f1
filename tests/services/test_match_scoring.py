"""
Graduate-job scoring and connection-based job scoring
"""
from types import SimpleNamespace

import pytest

from alumni.services.job_matching import circle_score, connection_score, education_score, skills_score
from alumni.services.matching import experience_match, location_compatibility, skills_match


def test_skills_match_counts_synonyms_as_partial():
    result = skills_match(["Python", "JavaScript", "Docker"], ["python", "js"])
    assert result["exact_matches"] == ["python"]
    assert result["partial_matches"] == [{"required": "javascript", "graduate": "js"}]
    assert result["missing_skills"] == ["docker"]
    assert result["score"] == 50.0


def test_skills_match_without_requirements():
    assert skills_match([], ["python"])["score"] == 0


def test_substring_skills_are_similar():
    result = skills_match(["sql"], ["postgresql"])
    assert result["partial_matches"] == [{"required": "sql", "graduate": "postgresql"}]


@pytest.mark.parametrize("required, years, expected", [
    (0, 0, 100.0),
    (3, 5, 100.0),
    (3, 1, 50.0),
    (6, 0, 0.0),
])
def test_experience_match(required, years, expected):
    assert experience_match(required, years) == expected


def test_location_compatibility():
    assert location_compatibility("Boston, MA", "boston") == 100.0
    assert location_compatibility("Cambridge, MA", "Boston, MA") == 70.0
    assert location_compatibility("Denver", "Boston") == 0.0


def test_connection_score_rewards_seniority():
    assert connection_score([]) == 0.0
    connections = [SimpleNamespace(current_title="Senior Engineer"), SimpleNamespace(current_title="Analyst")]
    assert connection_score(connections) == 50.0
    many = [SimpleNamespace(current_title="Director") for _ in range(6)]
    assert connection_score(many) == 100.0


def test_skills_score():
    assert skills_score([], ["python"]) == 50.0
    assert skills_score(["python"], ["python", "rust"]) == 50.0
    # extra skills beyond the posting add a small bonus
    assert skills_score(["Python", "SQL", "Go"], ["python", "sql"]) == 100.0


def test_education_score():
    job = SimpleNamespace(title="Software Engineer", description="Backend programming")
    assert education_score([], job) == 30.0
    education = [{"degree": "BSc Computer Science", "field_of_study": "Software", "institution": "MIT"}]
    assert education_score(education, job) == 80.0


def test_circle_score():
    assert circle_score(set(), [{"a"}]) == 0.0
    assert circle_score({"a", "b"}, [{"a"}, {"c"}]) == 35.0
