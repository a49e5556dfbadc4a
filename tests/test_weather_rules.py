import pytest

from companyops.services.weather_rules import (
    describe_conditions,
    evaluate_rule,
    find_matching_rule,
    is_in_range,
    matches_precipitation,
    normalize_snapshot,
)


def rule(rule_id, priority, conditions=None, enabled=True):
    return {"id": rule_id, "name": rule_id.title(), "enabled": enabled, "priority": priority,
            "conditions": conditions, "uniformId": 1}


def test_is_in_range_inclusive_and_lenient():
    assert is_in_range(30, {"min": 30, "max": 50})
    assert is_in_range(50, {"min": 30, "max": 50})
    assert not is_in_range(51, {"min": 30, "max": 50})
    assert not is_in_range(29, {"min": 30})
    assert is_in_range(None, {"min": 30})
    assert is_in_range(100, None)


@pytest.mark.parametrize("main,chance,expected", [
    ("Rain", 0, True),
    ("Light drizzle", 5, True),
    ("Clear", 10, False),
    ("Clear", 30, True),
    ("Clear", None, True),
])
def test_rain_type_with_chance_override(main, chance, expected):
    weather = {"weatherMain": main, "precipitationChance": chance}
    assert matches_precipitation(weather, {"types": ["rain"]}) is expected


def test_snow_also_matches_sleet():
    assert matches_precipitation({"weatherMain": "Sleet", "precipitationChance": 0}, {"types": ["snow"]})


def test_probability_range_must_hold():
    precip = {"probability": {"min": 50}}
    assert not matches_precipitation({"weatherMain": "Rain", "precipitationChance": 40}, precip)
    assert matches_precipitation({"weatherMain": "Rain", "precipitationChance": 60}, precip)
    # missing chance counts as zero
    assert not matches_precipitation({"weatherMain": "Rain"}, precip)


def test_evaluate_rule_enabled_and_conditions():
    assert not evaluate_rule(rule("off", 1, enabled=False), {"temperature": 40})
    assert evaluate_rule(rule("any", 1), {"temperature": 40})
    windy = rule("windy", 1, {"wind": {"speedMin": 20}})
    assert evaluate_rule(windy, {"windSpeed": 25})
    assert not evaluate_rule(windy, {"windSpeed": 5})
    cold_humid = rule("ch", 1, {"temperature": {"max": 45}, "humidity": {"min": 80}})
    assert evaluate_rule(cold_humid, {"temperature": 40, "humidity": 85})
    assert not evaluate_rule(cold_humid, {"temperature": 40, "humidity": 50})


def test_find_matching_rule_orders_by_priority():
    rules = [
        rule("mild", 3, {"temperature": {"min": 40}}),
        rule("cold", 1, {"temperature": {"max": 45}}),
        rule("any", 5),
    ]
    assert find_matching_rule(rules, {"current": {"temperature": 42}})["id"] == "cold"
    assert find_matching_rule(rules, {"current": {"temperature": 60}})["id"] == "mild"


def test_equal_priority_keeps_configured_order():
    rules = [rule("first", 1), rule("second", 1)]
    assert find_matching_rule(rules, {"temperature": 50})["id"] == "first"


def test_no_rules_or_no_match():
    assert find_matching_rule([], {"temperature": 50}) is None
    assert find_matching_rule(None, {"temperature": 50}) is None
    assert find_matching_rule([rule("hot", 1, {"temperature": {"min": 90}})], {"temperature": 50}) is None


def test_normalize_snapshot_prefers_nested_values():
    flat = normalize_snapshot({
        "current": {"temperature": 41, "weatherMain": "Rain"},
        "forecast": {"precipitationChance": 70},
        "humidity": 88,
    })
    assert flat["temperature"] == 41
    assert flat["weatherMain"] == "Rain"
    assert flat["humidity"] == 88
    assert flat["precipitationChance"] == 70
    assert normalize_snapshot({"temperature": 50})["precipitationChance"] == 0


def test_forecast_chance_drives_rain_rule_on_clear_sky():
    rain = rule("rain", 1, {"precipitation": {"types": ["rain"]}})
    assert find_matching_rule([rain], {"current": {"weatherMain": "Clouds"}, "forecast": {"precipitationChance": 45}})
    assert find_matching_rule([rain], {"current": {"weatherMain": "Clouds"}, "forecast": {"precipitationChance": 10}}) is None


def test_describe_conditions():
    conditions = {
        "temperature": {"min": 30, "max": 50},
        "wind": {"speedMax": 15},
        "precipitation": {"types": ["rain"]},
    }
    assert describe_conditions(conditions) == "Temp 30-50F, Wind <= 15 mph, Precip: rain"
    assert describe_conditions({"temperature": {"min": 30, "max": 50}}, units="metric") == "Temp 30-50C"
    assert describe_conditions({"uvIndex": {"min": 6}}) == "UV >= 6"
    assert describe_conditions(None) == "Any conditions"
