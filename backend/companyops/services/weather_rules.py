from __future__ import annotations

from typing import Any, Dict, Iterable, List, Mapping, Optional

# Chance (percent) at or above which a precipitation-typed rule applies even
# when the reported condition names another kind of weather.
PRECIP_CHANCE_OVERRIDE = 30

# A rule type that also matches a related condition.
_PRECIP_ALIASES = {
    "rain": ("drizzle",),
    "snow": ("sleet",),
}

SNAPSHOT_FIELDS = ("temperature", "humidity", "windSpeed", "uvIndex", "weatherMain")

# =========================
# Primitive checks
# =========================

def is_in_range(value: Optional[float], rng: Optional[Mapping[str, Any]]) -> bool:
    """Inclusive range check. A missing value or a missing range always passes."""
    if not rng or value is None:
        return True
    lo, hi = rng.get("min"), rng.get("max")
    if lo is not None and value < lo:
        return False
    if hi is not None and value > hi:
        return False
    return True


def _type_matches(weather_main: str, precip_type: str) -> bool:
    t = (precip_type or "").lower()
    if not t:
        return False
    if t in weather_main:
        return True
    return any(alias in weather_main for alias in _PRECIP_ALIASES.get(t, ()))


def matches_precipitation(weather: Mapping[str, Any], precip: Optional[Mapping[str, Any]]) -> bool:
    """Precipitation condition of a rule against a flat snapshot.

    When ``types`` are listed, the condition text must mention one of them
    (rain also covers drizzle, snow also covers sleet) unless the chance of
    precipitation is already at least 30%. A ``probability`` range, when
    present, must also hold for the chance (missing chance counts as 0).
    """
    if not precip:
        return True

    types = precip.get("types") or []
    if types:
        weather_main = str(weather.get("weatherMain") or "").lower()
        chance = weather.get("precipitationChance")
        if not any(_type_matches(weather_main, t) for t in types):
            if chance is not None and chance < PRECIP_CHANCE_OVERRIDE:
                return False

    probability = precip.get("probability")
    if probability:
        if not is_in_range(weather.get("precipitationChance") or 0, probability):
            return False
    return True

# =========================
# Rules
# =========================

def evaluate_rule(rule: Mapping[str, Any], weather: Mapping[str, Any]) -> bool:
    """True if an enabled rule's every present condition holds for ``weather``."""
    if not rule.get("enabled"):
        return False

    conditions = rule.get("conditions")
    if not conditions:
        return True

    if not is_in_range(weather.get("temperature"), conditions.get("temperature")):
        return False
    if not is_in_range(weather.get("humidity"), conditions.get("humidity")):
        return False

    wind = conditions.get("wind")
    if wind:
        wind_range = {"min": wind.get("speedMin"), "max": wind.get("speedMax")}
        if not is_in_range(weather.get("windSpeed"), wind_range):
            return False

    if not is_in_range(weather.get("uvIndex"), conditions.get("uvIndex")):
        return False

    if not matches_precipitation(weather, conditions.get("precipitation")):
        return False
    return True


def normalize_snapshot(weather: Mapping[str, Any]) -> Dict[str, Any]:
    """Flatten ``{current: {...}, forecast: {...}}`` into the fields rules look at.

    Flat mappings pass through; the precipitation chance comes from the
    forecast when present, else from the top level, else 0.
    """
    current = weather.get("current") or {}
    forecast = weather.get("forecast") or {}
    flat = {}
    for key in SNAPSHOT_FIELDS:
        value = current.get(key)
        flat[key] = weather.get(key) if value is None else value

    chance = forecast.get("precipitationChance")
    if chance is None:
        chance = weather.get("precipitationChance")
    flat["precipitationChance"] = chance if chance is not None else 0
    return flat


def find_matching_rule(
    rules: Optional[Iterable[Mapping[str, Any]]], weather: Mapping[str, Any]
) -> Optional[Mapping[str, Any]]:
    """First rule, lowest ``priority`` first, whose conditions all hold.

    Args:
        rules: Rule documents ({id, name, enabled, priority, conditions, uniformId}).
        weather: Nested or flat weather snapshot.

    Returns:
        The matched rule, or None when the list is empty or nothing matches.
    """
    rules = list(rules or [])
    if not rules:
        return None
    flat = normalize_snapshot(weather)
    # sorted() is stable, so equal priorities keep their configured order
    for rule in sorted(rules, key=lambda r: r.get("priority") or 0):
        if evaluate_rule(rule, flat):
            return rule
    return None

# =========================
# Descriptions
# =========================

def _describe_range(label: str, rng: Mapping[str, Any], unit: str, sep: str = "") -> Optional[str]:
    lo, hi = rng.get("min"), rng.get("max")
    if lo is not None and hi is not None:
        return f"{label} {lo}-{hi}{sep}{unit}"
    if lo is not None:
        return f"{label} >= {lo}{sep}{unit}"
    if hi is not None:
        return f"{label} <= {hi}{sep}{unit}"
    return None


def describe_conditions(conditions: Optional[Mapping[str, Any]], units: str = "imperial") -> str:
    """Short human summary, e.g. 'Temp 30-50F, Wind <= 15 mph, Precip: rain'."""
    if not conditions:
        return "Any conditions"

    metric = units == "metric"
    parts: List[str] = []

    if conditions.get("temperature"):
        parts.append(_describe_range("Temp", conditions["temperature"], "C" if metric else "F"))
    if conditions.get("humidity"):
        parts.append(_describe_range("Humidity", conditions["humidity"], "%"))
    if conditions.get("wind"):
        wind = conditions["wind"]
        parts.append(_describe_range(
            "Wind", {"min": wind.get("speedMin"), "max": wind.get("speedMax")},
            "km/h" if metric else "mph", sep=" ",
        ))
    types = (conditions.get("precipitation") or {}).get("types") or []
    if types:
        parts.append(f"Precip: {', '.join(types)}")
    if conditions.get("uvIndex"):
        parts.append(_describe_range("UV", conditions["uvIndex"], ""))

    parts = [p for p in parts if p]
    return ", ".join(parts) if parts else "Any conditions"
