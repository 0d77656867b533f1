"""
Audience detection and homepage personalization layers
"""
import pytest

from alumni.services.personalization import (
    apply_behavioral,
    apply_geographic,
    apply_time_of_day,
    build_context,
    content_cache_key,
    detect_audience,
)


def make_content():
    return {
        "hero": {
            "subtitle": "Join thousands advancing their careers",
            "description": "Professional alumni platform for professional networking",
        },
        "features": {"items": [{"id": "networking", "title": "Networking"}, {"id": "events", "title": "Events"}]},
        "cta": {"primary": {"text": "Get Started"}},
        "pricing": {"tiers": [{"name": "Pro", "price": 100}, {"name": "Free", "price": 0}]},
    }


def test_no_signals_means_individual():
    result = detect_audience({}, {})
    assert result["detected_audience"] == "individual"
    assert result["confidence"] == 0.0
    assert result["factors"] == []


@pytest.mark.parametrize("query, headers", [
    ({"audience": "institutional"}, {}),
    ({}, {"referer": "https://www.stanford.edu/alumni"}),
    ({"utm_source": "conference"}, {}),
    ({}, {"user-agent": "Campus Admin Dashboard/2.0"}),
])
def test_institutional_signals(query, headers):
    assert detect_audience(query, headers)["detected_audience"] == "institutional"


def test_unhelpful_signals_are_ignored():
    result = detect_audience({"audience": "robots", "utm_source": "twitter"}, {"referer": "not a url"})
    assert result["detected_audience"] == "individual"
    assert result["factors"] == []


def test_build_context():
    context = build_context(
        {"utm_campaign": "spring"},
        {"accept-language": "de-DE,de;q=0.9", "x-timezone": "Europe/Berlin", "x-session-id": "s1"},
        "10.0.0.1",
    )
    assert context["locale"] == "de"
    assert context["timezone"] == "Europe/Berlin"
    assert context["session_id"] == "s1"
    assert context["ip"] == "10.0.0.1"


def test_cache_key_varies_by_hour_and_campaign():
    context = {"utm_campaign": "spring", "locale": "en"}
    assert content_cache_key("individual", context, 9) == content_cache_key("individual", context, 9)
    assert content_cache_key("individual", context, 9) != content_cache_key("individual", context, 10)
    assert content_cache_key("individual", context, 9) != content_cache_key("individual", {}, 9)


def test_geographic_layer():
    content = apply_geographic(make_content(), "America/New_York")
    assert content["hero"]["description"].endswith("career networking")

    content = apply_geographic(make_content(), "Europe/Berlin")
    tiers = content["pricing"]["tiers"]
    assert tiers[0]["price_eur"] == 85
    assert "price_eur" not in tiers[1]


def test_time_of_day_layer():
    assert apply_time_of_day(make_content(), 10)["hero"]["subtitle"] == \
        "Join thousands of professionals advancing their careers"
    assert apply_time_of_day(make_content(), 20)["hero"]["subtitle"] == \
        "Join thousands building their careers after hours"
    assert apply_time_of_day(make_content(), 3)["hero"]["subtitle"] == "Join thousands advancing their careers"


def test_behavioral_layer():
    content = apply_behavioral(make_content(), ["/jobs", "/mentorship"])
    assert content["features"]["items"][0]["title"] == "Job-Focused Alumni Networking"
    assert content["features"]["items"][1]["title"] == "Events"
    assert content["cta"]["primary"]["text"] == "Find Your Mentor Today"

    untouched = apply_behavioral(make_content(), ["/about"])
    assert untouched == make_content()
