"""Address geocoding against a Nominatim-compatible search API.

Lookups never raise: any failure is logged and reported as ``None`` so
order creation proceeds without coordinates.
"""

import logging
import re
import time
from collections import OrderedDict
from typing import Callable, NamedTuple, Optional, Protocol

import requests
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from fieldcrm.config import Config

logger = logging.getLogger(__name__)

_STREET_PREFIX = re.compile(r"^(ul\.|al\.|pl\.)\s+", re.IGNORECASE)
_UNIT_SUFFIXES = [
    (re.compile(r"\s+(\d+[A-Z]?)\s*/\s*[A-Z0-9-]+$", re.IGNORECASE), r" \1"),
    (re.compile(r"\s*/\s*[A-Z0-9-]+$", re.IGNORECASE), ""),
    (re.compile(r"\s+(LU|LOK|L|M|M\.|LOKAL)\s*[A-Z0-9-]+$", re.IGNORECASE), ""),
]

CACHE_MAX = 2000


class LatLng(NamedTuple):
    lat: float
    lng: float


class Geocoder(Protocol):
    def geocode_address(self, street: str, city: str) -> Optional[LatLng]:
        ...


def clean_street_name(street: str) -> str:
    """Drop the Polish street-type prefix ("ul. Długa 1" -> "Długa 1")."""
    return _STREET_PREFIX.sub("", street).strip()


def strip_street_unit(street: str) -> str:
    """Drop flat and unit suffixes ("Lema 4/LU313" -> "Lema 4")."""
    result = street
    for pattern, repl in _UNIT_SUFFIXES:
        result = pattern.sub(repl, result)
    return result.strip()


def address_variants(street: str, city: str) -> list[str]:
    """Query strings from most to least specific, without duplicates."""
    cleaned = clean_street_name(street)
    candidates = [
        f"{street}, {city}",
        f"{cleaned}, {city}",
        f"{strip_street_unit(cleaned)}, {city}",
    ]
    return list(dict.fromkeys(c.strip(", ") for c in candidates if c.strip(", ")))


class RetryableStatus(Exception):
    """Throttled or failing upstream; worth another try."""

    def __init__(self, response):
        super().__init__(f"HTTP {response.status_code}")
        self.response = response


@retry(
    retry=retry_if_exception_type((requests.RequestException, RetryableStatus)),
    stop=stop_after_attempt(4),
    wait=wait_exponential(multiplier=0.4, max=10),
    reraise=True,
)
def _search(session, params: dict, headers: dict):
    response = session.get(
        Config.GEOCODER_URL, params=params, headers=headers,
        timeout=Config.GEOCODER_TIMEOUT,
    )
    if response.status_code == 429 or response.status_code >= 500:
        raise RetryableStatus(response)
    return response


class NominatimGeocoder:
    """Rate-friendly Nominatim client with retries and an in-memory cache."""

    def __init__(self, session: Optional[requests.Session] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.session = session or requests.Session()
        self._sleep = sleep
        self._cache: OrderedDict[str, LatLng] = OrderedDict()

    def geocode(self, address: str) -> Optional[LatLng]:
        if Config.GEOCODING_DISABLED:
            return None
        key = address.strip()
        if not key:
            return None
        if key in self._cache:
            self._cache.move_to_end(key)
            return self._cache[key]

        result = self._lookup(key)
        if result is not None:
            self._cache[key] = result
            if len(self._cache) > CACHE_MAX:
                self._cache.popitem(last=False)
        return result

    def geocode_address(self, street: str, city: str) -> Optional[LatLng]:
        """Try progressively simpler forms of a street address."""
        for query in address_variants(street, city):
            coords = self.geocode(query)
            if coords is not None:
                return coords
        return None

    def _lookup(self, query: str) -> Optional[LatLng]:
        params = {
            "format": "json",
            "limit": 1,
            "countrycodes": Config.GEOCODER_COUNTRY_CODES,
            "q": query,
        }
        headers = {
            "User-Agent": Config.GEOCODER_USER_AGENT,
            "Accept-Language": "pl,en;q=0.8",
        }
        search = _search.retry_with(
            stop=stop_after_attempt(Config.GEOCODER_MAX_RETRIES + 1),
            sleep=self._sleep,
        )
        try:
            response = search(self.session, params, headers)
        except RetryableStatus as e:
            logger.warning(f"Geocoder gave up on '{query}' after {e}")
            return None
        except requests.RequestException as e:
            logger.error(f"Geocoding failed for '{query}': {e}")
            return None
        if not response.ok:
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"Geocoder returned invalid JSON for '{query}'")
            return None
        if not isinstance(data, list) or not data:
            return None
        try:
            return LatLng(float(data[0]["lat"]), float(data[0]["lon"]))
        except (KeyError, TypeError, ValueError):
            logger.warning(f"Geocoder returned malformed hit for '{query}'")
            return None
