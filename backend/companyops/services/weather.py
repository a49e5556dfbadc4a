from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

import requests
from django.db import transaction
from django.utils import timezone as dj_timezone

from companyops.domain.errors import InvalidState, NotFound, UpstreamFailure
from companyops.domain.models import (
    MealSlot,
    Personnel,
    RecommendationStatus,
    SettingsKey,
    Uniform,
    WeatherRecommendation,
)
from companyops.domain.repositories import RecommendationRepository, SettingsRepository
from companyops.domain.roles import Permission, require_permission
from companyops.services import timezone as tz
from companyops.services.weather_rules import find_matching_rule
from companyops.utils import _get_setting

log = logging.getLogger(__name__)

CACHE_MINUTES = 30
RECOMMENDATION_TTL_HOURS = 24
WINDOW_START_MINUTES = 30
WINDOW_END_MINUTES = 90
PRECIP_KEYWORDS = ("rain", "snow", "sleet", "drizzle", "storm", "thunder")

# =========================
# WeatherAPI.com client
# =========================

class WeatherAPIClient:
    """Thin client over WeatherAPI.com's forecast endpoint.

    Returns normalized dicts keyed the way the rule matcher reads them, so the
    rest of the app never sees the provider's field names.
    """

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None,
                 timeout: Optional[float] = None, session: Optional[requests.Session] = None):
        self.api_key = api_key or _get_setting("WEATHER_API_KEY", "")
        self.base_url = (base_url or _get_setting("WEATHER_API_URL", "https://api.weatherapi.com/v1")).rstrip("/")
        self.timeout = timeout or _get_setting("WEATHER_API_TIMEOUT", 10)
        self.session = session or requests.Session()

    def _get(self, path: str, **params) -> Dict[str, Any]:
        url = f"{self.base_url}/{path}"
        try:
            resp = self.session.get(url, params={"key": self.api_key, **params}, timeout=self.timeout)
        except requests.RequestException as exc:
            raise UpstreamFailure(f"WeatherAPI request failed: {exc}") from exc
        if not resp.ok:
            raise UpstreamFailure(f"WeatherAPI error: {resp.status_code} - {resp.text[:200]}")
        return resp.json()

    def get_weather_data(self, lat: float, lon: float, units: str = "imperial",
                         now: Optional[datetime] = None) -> Dict[str, Any]:
        """Current conditions, today's forecast (with hourly entries) and astronomy.

        Args:
            lat (float): Latitude.
            lon (float): Longitude.
            units (str, optional): 'imperial' or 'metric'. Defaults to "imperial".
            now (Optional[datetime], optional): Fetch instant, used for expiry. Defaults to now.

        Returns:
            Dict[str, Any]: {current, forecast, astronomy, location, fetchedAt, expiresAt}.

        Raises:
            UpstreamFailure: Network error, non-2xx status or an unexpected payload.
        """
        data = self._get("forecast.json", q=f"{lat},{lon}", days=1, aqi="no")
        imperial = units != "metric"
        try:
            current = data["current"]
            day = data["forecast"]["forecastday"][0]
        except (KeyError, IndexError, TypeError) as exc:
            raise UpstreamFailure("WeatherAPI returned an unexpected payload") from exc

        astro = day.get("astro") or {}
        totals = day.get("day") or {}
        fetched = now or dj_timezone.now()
        return {
            "current": {
                "temperature": current.get("temp_f" if imperial else "temp_c"),
                "feelsLike": current.get("feelslike_f" if imperial else "feelslike_c"),
                "humidity": current.get("humidity"),
                "windSpeed": current.get("wind_mph" if imperial else "wind_kph"),
                "weatherCode": (current.get("condition") or {}).get("code"),
                "weatherMain": (current.get("condition") or {}).get("text"),
                "precipitation": current.get("precip_in" if imperial else "precip_mm"),
                "uvIndex": current.get("uv"),
            },
            "forecast": {
                "tempHigh": totals.get("maxtemp_f" if imperial else "maxtemp_c"),
                "tempLow": totals.get("mintemp_f" if imperial else "mintemp_c"),
                "precipitationChance": max(
                    totals.get("daily_chance_of_rain") or 0, totals.get("daily_chance_of_snow") or 0
                ),
                "uvIndexMax": totals.get("uv"),
                "hourly": [
                    {
                        "time": h.get("time"),
                        "timeEpoch": h.get("time_epoch"),
                        "temp": h.get("temp_f" if imperial else "temp_c"),
                        "humidity": h.get("humidity"),
                        "windSpeed": h.get("wind_mph" if imperial else "wind_kph"),
                        "weatherMain": (h.get("condition") or {}).get("text") or "",
                        "chanceOfRain": h.get("chance_of_rain"),
                        "chanceOfSnow": h.get("chance_of_snow"),
                    }
                    for h in day.get("hour") or []
                ],
            },
            "astronomy": {
                "sunrise": astro.get("sunrise"),
                "sunset": astro.get("sunset"),
                "moonPhase": astro.get("moon_phase"),
                "moonIllumination": astro.get("moon_illumination"),
            },
            "location": {
                "lat": lat,
                "lon": lon,
                "name": (data.get("location") or {}).get("name"),
                "region": (data.get("location") or {}).get("region"),
            },
            "fetchedAt": fetched.isoformat(),
            "expiresAt": (fetched + timedelta(minutes=CACHE_MINUTES)).isoformat(),
        }

# =========================
# Forecast window
# =========================

def _hour_start(hour: Dict[str, Any], tz_name: Optional[str]) -> Optional[datetime]:
    epoch = hour.get("timeEpoch")
    if epoch is not None:
        return datetime.fromtimestamp(int(epoch), tz=tz.get_zone("UTC"))
    raw = hour.get("time")
    if not raw:
        return None
    try:
        naive = datetime.strptime(str(raw), "%Y-%m-%d %H:%M")
    except ValueError:
        return None
    # provider reports hourly times in the location's wall clock
    return naive.replace(tzinfo=tz.get_zone(tz_name))


def _precip_chance(hour: Dict[str, Any]) -> int:
    return max(hour.get("chanceOfRain") or 0, hour.get("chanceOfSnow") or 0)


def forecast_for_time_window(
    hourly: Optional[List[Dict[str, Any]]],
    now: Optional[datetime] = None,
    minutes_ahead_start: int = WINDOW_START_MINUTES,
    minutes_ahead_end: int = WINDOW_END_MINUTES,
    tz_name: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Aggregate the hourly forecast over the window people will actually be outside.

    Every hour overlapping [now+start, now+end] counts: temperature and humidity are
    averaged, wind and precipitation chance take the worst case, and the condition
    prefers any precipitation-like text. With no overlap the next future hour is used.
    Returns None when there is nothing usable.
    """
    if not hourly:
        return None

    instant = now or dj_timezone.now()
    window_start = instant + timedelta(minutes=minutes_ahead_start)
    window_end = instant + timedelta(minutes=minutes_ahead_end)

    timed = [(h, _hour_start(h, tz_name)) for h in hourly]
    timed = [(h, start) for h, start in timed if start is not None]
    relevant = [h for h, start in timed if start < window_end and start + timedelta(hours=1) > window_start]

    window = {"windowStart": window_start.isoformat(), "windowEnd": window_end.isoformat()}

    if not relevant:
        upcoming = next((h for h, start in timed if start > instant), None)
        if upcoming is None:
            return None
        return {
            "temperature": upcoming.get("temp"),
            "humidity": upcoming.get("humidity"),
            "windSpeed": upcoming.get("windSpeed"),
            "weatherMain": upcoming.get("weatherMain"),
            "precipitationChance": _precip_chance(upcoming),
            "forecastTime": upcoming.get("time"),
            "hoursUsed": 1,
            **window,
        }

    temps = [h.get("temp") or 0 for h in relevant]
    humidities = [h.get("humidity") or 0 for h in relevant]
    conditions = [h.get("weatherMain") or "" for h in relevant]
    wet = next((c for c in conditions if any(k in c.lower() for k in PRECIP_KEYWORDS)), None)

    return {
        "temperature": round(sum(temps) / len(temps)),
        "humidity": round(sum(humidities) / len(humidities)),
        "windSpeed": round(max(h.get("windSpeed") or 0 for h in relevant)),
        "weatherMain": wet or conditions[0],
        "precipitationChance": max(_precip_chance(h) for h in relevant),
        "forecastTime": relevant[0].get("time"),
        "hoursUsed": len(relevant),
        **window,
    }

# =========================
# Weather check
# =========================

def _write_cache(weather: Dict[str, Any], location: Dict[str, Any]) -> None:
    coords = location.get("coordinates") or {}
    SettingsRepository.put(SettingsKey.WEATHER_CACHE, {
        "current": weather["current"],
        "forecast": weather["forecast"],
        "astronomy": weather["astronomy"],
        "location": {**weather["location"], "name": coords.get("resolvedAddress") or weather["location"].get("name")},
        "fetchedAt": weather["fetchedAt"],
        "expiresAt": weather["expiresAt"],
    }, merge=False)


def perform_weather_check(
    triggered_by: str = "scheduled",
    actor: Optional[Personnel] = None,
    target_slot: Optional[str] = None,
    force: bool = False,
    now: Optional[datetime] = None,
    client: Optional[WeatherAPIClient] = None,
) -> Dict[str, Any]:
    """Fetch weather, pick a uniform and file a pending recommendation.

    Args:
        triggered_by (str, optional): 'scheduled' or 'manual'. Defaults to "scheduled".
        actor (Optional[Personnel], optional): Who asked, for manual runs. Defaults to None.
        target_slot (Optional[str], optional): Meal slot; derived from the clock if omitted.
        force (bool, optional): Supersede an active recommendation for the slot. Needs an actor.
        now (Optional[datetime], optional): Evaluation instant. Defaults to now.
        client (Optional[WeatherAPIClient], optional): Weather client. Defaults to a new one.

    Returns:
        Dict[str, Any]: Outcome with ``success``, ``message`` and either ``recommendationId``
        or ``skipped``/``existingRecommendationId``.

    Raises:
        InvalidState: Location or rules are not configured.
        NotFound: The chosen uniform does not exist.
        UpstreamFailure: The weather provider failed.
    """
    config = SettingsRepository.app_config()
    tz_name = tz.configured_timezone(config)
    instant = now or dj_timezone.now()

    location = SettingsRepository.get(SettingsKey.WEATHER_LOCATION)
    coords = location.get("coordinates")
    if not coords or coords.get("lat") is None or coords.get("lon") is None:
        raise InvalidState("Weather location not configured")
    if not SettingsRepository.exists(SettingsKey.WEATHER_RULES):
        raise InvalidState("Weather rules not configured")
    rules_doc = SettingsRepository.get(SettingsKey.WEATHER_RULES)

    client = client or WeatherAPIClient()
    weather = client.get_weather_data(coords["lat"], coords["lon"], location.get("units") or "imperial", now=instant)
    window = forecast_for_time_window(weather["forecast"]["hourly"], instant, tz_name=tz_name)
    _write_cache(weather, location)

    current = weather["current"]
    if window:
        snapshot = {
            "current": {
                "temperature": window["temperature"],
                "humidity": window["humidity"],
                "windSpeed": window["windSpeed"],
                "weatherMain": window["weatherMain"],
                "uvIndex": current.get("uvIndex"),
            },
            "forecast": {"precipitationChance": window["precipitationChance"]},
        }
    else:
        snapshot = weather

    rule = find_matching_rule(rules_doc.get("rules") or [], snapshot)
    uniform_id = (rule or {}).get("uniformId") or rules_doc.get("defaultUniformId")
    if not uniform_id:
        log.info("Weather check: no rule matched and no default uniform configured")
        return {
            "success": True,
            "message": "No matching rule and no default uniform configured",
            "weather": current,
            "recommendation": None,
        }

    uniform = Uniform.objects.filter(pk=uniform_id).first()
    if uniform is None:
        raise NotFound(f"Uniform {uniform_id} not found", uniform_id=uniform_id)

    slot = target_slot or tz.determine_target_slot(tz_name, instant)
    if slot not in MealSlot.values:
        raise InvalidState(f"Unknown slot {slot!r}")
    target_date = tz.today_in(tz_name, instant)

    if window:
        used = {
            "temperature": window["temperature"],
            "humidity": window["humidity"],
            "windSpeed": window["windSpeed"],
            "uvIndex": current.get("uvIndex"),
            "weatherMain": window["weatherMain"],
            "precipitationChance": window["precipitationChance"],
            "forecastTime": window["forecastTime"],
            "forecastWindowStart": window["windowStart"],
            "forecastWindowEnd": window["windowEnd"],
            "hoursUsed": window["hoursUsed"],
            "isForecast": True,
        }
    else:
        used = {
            "temperature": current.get("temperature"),
            "humidity": current.get("humidity"),
            "windSpeed": current.get("windSpeed"),
            "uvIndex": current.get("uvIndex"),
            "weatherMain": current.get("weatherMain"),
            "precipitationChance": weather["forecast"].get("precipitationChance"),
            "isForecast": False,
        }
    used["fetchedAt"] = weather["fetchedAt"]

    with transaction.atomic():
        existing = RecommendationRepository.active_for_slot(target_date, slot, for_update=True)
        if existing is not None:
            if not (force and actor is not None):
                return {
                    "success": True,
                    "message": f"Recommendation already exists for {target_date.isoformat()} {slot}",
                    "weather": current,
                    "recommendation": None,
                    "skipped": True,
                    "existingRecommendationId": existing.pk,
                }
            existing.status = RecommendationStatus.SUPERSEDED
            existing.superseded_by = actor
            existing.superseded_at = instant
            existing.save(update_fields=["status", "superseded_by", "superseded_at"])
            log.info("Superseded recommendation %s for %s %s", existing.pk, target_date, slot)

        rec = WeatherRecommendation.objects.create(
            target_date=target_date,
            target_slot=slot,
            weather=used,
            current_weather={
                "temperature": current.get("temperature"),
                "humidity": current.get("humidity"),
                "windSpeed": current.get("windSpeed"),
                "uvIndex": current.get("uvIndex"),
                "weatherMain": current.get("weatherMain"),
                "precipitation": current.get("precipitation"),
            },
            astronomy=weather.get("astronomy"),
            uniform=uniform,
            uniform_name=uniform.name,
            uniform_number=uniform.number,
            matched_rule_id=(rule or {}).get("id"),
            matched_rule_name=(rule or {}).get("name") or "Default",
            status=RecommendationStatus.PENDING,
            triggered_by=triggered_by,
            created_by=actor if triggered_by == "manual" else None,
            expires_at=instant + timedelta(hours=RECOMMENDATION_TTL_HOURS),
        )

    log.info(
        "Weather check (%s): %s %s -> %s (rule=%s, forecast=%s)",
        triggered_by, target_date, slot, uniform.name, rec.matched_rule_name, bool(window),
    )
    return {
        "success": True,
        "message": (
            "Weather recommendation created (based on 30-90 min forecast)"
            if window else "Weather recommendation created (forecast unavailable, used current)"
        ),
        "recommendationId": rec.pk,
        "weather": current,
        "forecastWeather": window,
        "astronomy": weather.get("astronomy"),
        "recommendation": {
            "uniformNumber": uniform.number,
            "uniformName": uniform.name,
            "matchedRule": rec.matched_rule_name,
            "targetSlot": slot,
            "targetDate": target_date.isoformat(),
            "usedForecast": bool(window),
        },
    }


def manual_weather_check(actor: Personnel, target_slot: Optional[str] = None, force: bool = False,
                         now: Optional[datetime] = None, client: Optional[WeatherAPIClient] = None) -> Dict[str, Any]:
    require_permission(actor, Permission.MODIFY_UOTD, "Must be admin or uniform_admin to trigger weather check")
    return perform_weather_check("manual", actor, target_slot, force, now, client)


def scheduled_weather_check(now: Optional[datetime] = None, client: Optional[WeatherAPIClient] = None) -> Dict[str, Any]:
    """Run the check for every enabled UOTD slot whose time ('HHMM') is the current minute."""
    tz_name = tz.configured_timezone()
    current = tz.current_hhmm_in(tz_name, now)
    slots = SettingsRepository.get(SettingsKey.UOTD_SCHEDULE).get("slots") or {}
    if not slots:
        return {"skipped": True, "reason": "UOTD schedule not configured", "currentTime": current, "timezone": tz_name}

    due = [key for key, slot in slots.items() if slot and slot.get("enabled") and str(slot.get("time")) == current]
    if not due:
        return {"skipped": True, "currentTime": current, "timezone": tz_name}

    results = []
    for key in due:
        results.append({"slotKey": key, "result": perform_weather_check("scheduled", None, key, now=now, client=client)})
    log.info("Scheduled weather check ran %d slot(s) at %s", len(results), current)
    return {"processed": len(results), "currentTime": current, "timezone": tz_name, "results": results}


def current_weather(now: Optional[datetime] = None, client: Optional[WeatherAPIClient] = None) -> Dict[str, Any]:
    """Cached conditions while fresh, otherwise a new fetch that refreshes the cache."""
    instant = now or dj_timezone.now()
    cache = SettingsRepository.get(SettingsKey.WEATHER_CACHE)
    expires = cache.get("expiresAt")
    if expires:
        try:
            fresh = datetime.fromisoformat(expires) > instant
        except ValueError:
            fresh = False
        if fresh:
            return {
                "success": True,
                "weather": cache.get("current"),
                "forecast": cache.get("forecast"),
                "astronomy": cache.get("astronomy"),
                "location": cache.get("location"),
                "cached": True,
                "fetchedAt": cache.get("fetchedAt"),
            }

    location = SettingsRepository.get(SettingsKey.WEATHER_LOCATION)
    coords = location.get("coordinates")
    if not coords:
        raise InvalidState("Weather location not configured")
    client = client or WeatherAPIClient()
    weather = client.get_weather_data(coords["lat"], coords["lon"], location.get("units") or "imperial", now=instant)
    _write_cache(weather, location)
    return {
        "success": True,
        "weather": weather["current"],
        "forecast": weather["forecast"],
        "astronomy": weather["astronomy"],
        "location": {**weather["location"], "name": coords.get("resolvedAddress") or weather["location"].get("name")},
        "cached": False,
        "fetchedAt": weather["fetchedAt"],
    }

# =========================
# Approval
# =========================

def approve_recommendation(rec_id: int, actor: Personnel) -> WeatherRecommendation:
    require_permission(actor, Permission.APPROVE_WEATHER_UOTD)
    with transaction.atomic():
        rec = RecommendationRepository.get(rec_id, for_update=True)
        if rec.status != RecommendationStatus.PENDING:
            raise InvalidState("Recommendation is no longer pending")
        rec.status = RecommendationStatus.APPROVED
        rec.approved_by = actor
        rec.approved_at = dj_timezone.now()
        rec.save(update_fields=["status", "approved_by", "approved_at"])
    return rec


def reject_recommendation(rec_id: int, actor: Personnel, reason: str = "") -> WeatherRecommendation:
    require_permission(actor, Permission.APPROVE_WEATHER_UOTD)
    with transaction.atomic():
        rec = RecommendationRepository.get(rec_id, for_update=True)
        if rec.status != RecommendationStatus.PENDING:
            raise InvalidState("Recommendation is no longer pending")
        rec.status = RecommendationStatus.REJECTED
        rec.rejected_by = actor
        rec.rejected_at = dj_timezone.now()
        rec.rejection_reason = reason or None
        rec.save(update_fields=["status", "rejected_by", "rejected_at", "rejection_reason"])
    return rec
