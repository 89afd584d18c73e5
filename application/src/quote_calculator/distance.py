"""Distance-based travel fees: geocode, measure, and turn extra miles into a fee."""

from __future__ import annotations

import math
import os
import sys
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Awaitable, Callable

import httpx

from .models import finite_float

GEOCODE_URL = "https://maps.googleapis.com/maps/api/geocode/json"
EARTH_RADIUS_MILES = 3959.0
DEFAULT_TIMEOUT_SECONDS = 10.0

PRICING_DOLLAR = "dollar"
PRICING_PERCENT = "percent"
_PRICING_ALIASES = {
    "dollar": PRICING_DOLLAR,
    "flat": PRICING_DOLLAR,
    "fixed": PRICING_DOLLAR,
    "percent": PRICING_PERCENT,
    "percentage": PRICING_PERCENT,
}

# Approximate city centres used when the geocoding API is unavailable
CITY_COORDS: dict[str, tuple[float, float, str]] = {
    "philadelphia": (39.9526, -75.1652, "Philadelphia, PA"),
    "harrisburg": (40.2732, -76.8867, "Harrisburg, PA"),
    "lemoyne": (40.2409, -76.8939, "Lemoyne, PA"),
    "pittsburgh": (40.4406, -79.9959, "Pittsburgh, PA"),
    "baltimore": (39.2904, -76.6122, "Baltimore, MD"),
    "washington": (38.9072, -77.0369, "Washington, DC"),
    "new york": (40.7128, -74.0060, "New York, NY"),
}
CITY_ALIASES = {"philly": "philadelphia", "dc": "washington", "newyork": "new york"}

# Collaborator contract: (business_address, customer_address) -> {"distanceMiles": float}
DistanceLookup = Callable[[str, str], Awaitable[dict[str, Any]]]


def _google_api_key() -> str | None:
    return (os.environ.get("GOOGLE_MAPS_API_KEY") or "").strip() or None


def _timeout() -> float:
    try:
        return float(os.environ.get("DISTANCE_LOOKUP_TIMEOUT", DEFAULT_TIMEOUT_SECONDS))
    except ValueError:
        return DEFAULT_TIMEOUT_SECONDS


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


@dataclass
class DistanceSettings:
    """Business distance-pricing configuration."""
    enabled: bool = False
    service_radius: float = 0.0
    pricing_type: str = PRICING_DOLLAR
    rate_per_mile: float = 0.0

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> DistanceSettings:
        d = dict(data or {})
        raw_type = str(d.get("pricingType", d.get("distancePricingType")) or PRICING_DOLLAR).lower()
        return cls(
            enabled=bool(d.get("enabled", d.get("enableDistancePricing", False))),
            service_radius=finite_float(d.get("serviceRadius")),
            pricing_type=_PRICING_ALIASES.get(raw_type, PRICING_DOLLAR),
            rate_per_mile=finite_float(d.get("ratePerMile", d.get("distancePricingRate"))),
        )


@dataclass
class DistanceInfo:
    """
    Travel fee for an address outside the service radius.

    `fee` is dollars in dollar mode and a decimal fraction of the discounted subtotal
    in percent mode. `customer_address` tags the lookup that produced it.
    """
    distance_miles: float
    fee: float
    message: str
    pricing_type: str = PRICING_DOLLAR
    customer_address: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "distance_miles": self.distance_miles,
            "fee": self.fee,
            "message": self.message,
            "pricing_type": self.pricing_type,
            "customer_address": self.customer_address,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DistanceInfo:
        d = dict(data)
        raw_type = str(d.get("pricingType", d.get("pricing_type")) or PRICING_DOLLAR).lower()
        return cls(
            distance_miles=finite_float(d.get("distanceMiles", d.get("distance_miles"))),
            fee=finite_float(d.get("fee")),
            message=str(d.get("message") or ""),
            pricing_type=_PRICING_ALIASES.get(raw_type, PRICING_DOLLAR),
            customer_address=str(d.get("customerAddress", d.get("customer_address")) or ""),
        )


def haversine_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """Great-circle distance in miles, rounded to 2 decimals."""
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_MILES * c, 2)


def geocode_from_city(address: str) -> tuple[float, float] | None:
    """Match a known city name in the address; None if nothing matches."""
    text = address.lower()
    words = set(text.replace(",", " ").split())
    for alias, city in CITY_ALIASES.items():
        if alias in words:
            lat, lng, _ = CITY_COORDS[city]
            return lat, lng
    for key, (lat, lng, _) in CITY_COORDS.items():
        if key in text:
            return lat, lng
    return None


async def geocode_address(client: httpx.AsyncClient, address: str) -> tuple[float, float]:
    """(lat, lng) for an address: Google Geocoding if configured, else the city table."""
    api_key = _google_api_key()
    if api_key:
        try:
            resp = await client.get(GEOCODE_URL, params={"address": address, "key": api_key})
            resp.raise_for_status()
            results = resp.json().get("results") or []
            if results:
                location = results[0]["geometry"]["location"]
                return float(location["lat"]), float(location["lng"])
            print(f"[distance] No geocoding results for {address!r}; trying city fallback", file=sys.stderr)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            print(f"[distance] Geocoding failed for {address!r}: {exc!r}; trying city fallback", file=sys.stderr)
    coords = geocode_from_city(address)
    if coords is None:
        raise ValueError(f"could not geocode address {address!r}")
    return coords


async def lookup_distance(business_address: str, customer_address: str) -> dict[str, Any]:
    """Default distance collaborator: geocode both ends and measure straight-line miles."""
    async with httpx.AsyncClient(timeout=_timeout()) as client:
        b_lat, b_lng = await geocode_address(client, business_address)
        c_lat, c_lng = await geocode_address(client, customer_address)
    return {"distanceMiles": haversine_miles(b_lat, b_lng, c_lat, c_lng)}


def distance_info_for(distance_miles: float, settings: DistanceSettings, customer_address: str = "") -> DistanceInfo | None:
    """Fee for a measured distance; None inside the service radius."""
    distance = _dec(distance_miles)
    radius = _dec(settings.service_radius)
    if distance <= radius:
        return None

    extra_miles = distance - radius
    rate = _dec(settings.rate_per_mile)
    if settings.pricing_type == PRICING_PERCENT:
        fee = extra_miles * rate
        message = (
            f"You're {float(extra_miles):g} miles outside our {float(radius):g}-mile service area. "
            f"A {float(fee * 100):g}% travel surcharge applies."
        )
    else:
        fee = (extra_miles * rate).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
        # Quotes are charged in whole units, so the message shows the charged amount
        charged = fee.quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        message = (
            f"You're {float(extra_miles):g} miles outside our {float(radius):g}-mile service area. "
            f"A travel fee of ${charged:.2f} applies."
        )
    return DistanceInfo(
        distance_miles=float(distance_miles),
        fee=float(fee),
        message=message,
        pricing_type=settings.pricing_type,
        customer_address=customer_address,
    )


async def get_distance_info(
    business_address: str | None,
    customer_address: str | None,
    settings: DistanceSettings | None,
    lookup: DistanceLookup | None = None,
) -> DistanceInfo | None:
    """
    Travel fee info for a customer address, or None when no fee applies.

    None covers: feature off, an address missing, inside the radius, and any lookup
    failure. No lookup is made unless both addresses are present and the feature is on.
    """
    business_address = (business_address or "").strip()
    customer_address = (customer_address or "").strip()
    if settings is None or not settings.enabled or not business_address or not customer_address:
        return None

    lookup = lookup or lookup_distance
    try:
        result = await lookup(business_address, customer_address)
        distance_miles = float(result["distanceMiles"])
        if not math.isfinite(distance_miles) or distance_miles < 0:
            raise ValueError(f"invalid distance {result['distanceMiles']!r}")
        return distance_info_for(distance_miles, settings, customer_address)
    except Exception as exc:
        print(f"[distance] Distance lookup failed for {customer_address!r}: {exc!r}", file=sys.stderr)
        return None


def _address_key(address: str | None) -> str:
    return " ".join((address or "").lower().split())


class DistanceRequestTracker:
    """
    Drops distance results that a later address edit has superseded.

    Call `begin` when a lookup starts; a result is applied only if `is_current` still
    holds for the address it was computed for.
    """

    def __init__(self) -> None:
        self._latest: str | None = None

    def begin(self, customer_address: str | None) -> str:
        self._latest = _address_key(customer_address)
        return self._latest

    def is_current(self, customer_address: str | None) -> bool:
        return self._latest is not None and _address_key(customer_address) == self._latest

    def accept(self, info: DistanceInfo | None, customer_address: str | None) -> DistanceInfo | None:
        """`info` if it belongs to the latest request, else None (superseded result dropped)."""
        if not self.is_current(customer_address):
            print(f"[distance] Dropping superseded result for {customer_address!r}", file=sys.stderr)
            return None
        return info

    async def fetch(
        self,
        business_address: str | None,
        customer_address: str | None,
        settings: DistanceSettings | None,
        lookup: DistanceLookup | None = None,
    ) -> tuple[bool, DistanceInfo | None]:
        """Run one lookup; returns (still_current, info). A superseded lookup yields (False, None)."""
        self.begin(customer_address)
        info = await get_distance_info(business_address, customer_address, settings, lookup)
        current = self.is_current(customer_address)
        return current, self.accept(info, customer_address)


def format_distance(miles: float) -> str:
    if miles < 1:
        return f"{round(miles * 10) / 10:g} mi"
    return f"{int(Decimal(str(miles)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))} mi"


def format_currency(cents: int) -> str:
    return f"${cents / 100:.2f}"
