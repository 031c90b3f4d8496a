"""
Geocoding provider adapters implementing the Geocoder interface.

Three providers are supported:
- Nominatim (OpenStreetMap): free, strict 1 req/s policy, User-Agent required
- LocationIQ: API key, OSM-shaped payloads, conservative free tier
- Google Maps Geocoding: API key, `{status, results}` envelope

Each adapter owns its request builder, response parser and rate-limit
constant. All of them normalize into GeocodeHit.
"""

import logging
from typing import Any, ClassVar, Dict, List, Optional, Tuple, Type

import requests

from ..utils.errors import (
    ProviderPermanentError,
    ProviderRateLimitedError,
    ProviderTransientError,
)
from .base import Geocoder
from .models import (
    PROVIDER_INTERVALS_MS,
    Coordinate,
    GeocodeHit,
    ProviderConfig,
    ProviderName,
)

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 10.0
DEFAULT_USER_AGENT = "coverage-geo/0.1"
KEY_CHECK_TIMEOUT_S = 5.0

# OSM address keys that hold the settlement name, in preference order
_OSM_CITY_KEYS = ("city", "town", "village", "hamlet", "municipality")


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


class HttpGeocoder(Geocoder):
    """
    Shared HTTP plumbing for provider adapters.

    Turns transport failures and HTTP status codes into the provider
    error taxonomy so the retry executor can decide what to retry.
    """

    base_url: ClassVar[str]
    # Statuses the provider uses to say "nothing found"
    no_match_statuses: ClassVar[tuple[int, ...]] = ()

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT_S,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        """
        Initialize adapter.

        Args:
            api_key: Provider API key (ignored by Nominatim)
            base_url: Override of the provider endpoint (mock servers)
            session: Shared requests session; a private one is created if omitted
            timeout: Per-attempt HTTP timeout in seconds
            user_agent: User-Agent header sent with every request
        """
        self.api_key = api_key
        self.base_url = (base_url or type(self).base_url).rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.headers = {"User-Agent": user_agent, "Accept": "application/json"}

    def _get(self, endpoint: str, params: Dict[str, Any]) -> Any:
        """
        Issue a GET and return the decoded JSON body.

        Returns None for the provider's "no match" statuses.

        Raises:
            ProviderRateLimitedError: HTTP 429
            ProviderTransientError: timeout, connection error, 5xx, non-JSON body
            ProviderPermanentError: any other 4xx
        """
        name = self.provider.value
        response = self._request(endpoint, params)

        status = response.status_code
        if status == 429:
            raise ProviderRateLimitedError(name, "rate limit exceeded", http_status=status)
        if status in self.no_match_statuses:
            return None
        if status >= 500:
            raise ProviderTransientError(name, f"server error {status}", http_status=status)
        if status >= 400:
            raise ProviderPermanentError(
                name, f"request rejected ({status}): {self._error_message(response)}", http_status=status
            )

        try:
            return response.json()
        except ValueError as e:
            raise ProviderTransientError(name, "response body is not JSON", http_status=status) from e

    def _request(
        self,
        endpoint: str,
        params: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> requests.Response:
        """Send a GET, mapping transport failures to ProviderTransientError."""
        name = self.provider.value
        timeout = self.timeout if timeout is None else timeout
        logger.debug(f"{name} GET {endpoint} {self._loggable(params)}")

        try:
            return self.session.get(
                endpoint,
                params=params,
                headers=self.headers,
                timeout=timeout,
            )
        except requests.exceptions.Timeout as e:
            raise ProviderTransientError(name, f"timeout after {timeout}s: {e}") from e
        except requests.exceptions.RequestException as e:
            raise ProviderTransientError(name, f"network error: {e}") from e

    def verify_key(self) -> Tuple[bool, str]:
        """
        Check the configured API key with one cheap request.

        Returns:
            (valid, message)

        Raises:
            ProviderTransientError: the provider could not be reached
        """
        raise NotImplementedError(f"{self.provider.value} does not use an API key")

    @staticmethod
    def _json_object(response: requests.Response) -> Dict[str, Any]:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return (response.text or "")[:200]
        if isinstance(body, dict):
            return str(body.get("error") or body.get("error_message") or body.get("message") or body)[:200]
        return str(body)[:200]

    @staticmethod
    def _loggable(params: Dict[str, Any]) -> Dict[str, Any]:
        return {k: ("***" if k == "key" else v) for k, v in params.items()}


class _OSMStyleGeocoder(HttpGeocoder):
    """Parsing shared by Nominatim and LocationIQ, which both return OSM place records."""

    search_path: ClassVar[str] = "/search"
    reverse_path: ClassVar[str] = "/reverse"

    def _auth_params(self) -> Dict[str, Any]:
        return {}

    def search(self, query: str, limit: int = 1) -> List[GeocodeHit]:
        params = {
            **self._auth_params(),
            "q": query,
            "format": "json",
            "addressdetails": 1,
            "limit": limit,
            "countrycodes": "us",
        }
        payload = self._get(f"{self.base_url}{self.search_path}", params)
        if not isinstance(payload, list):
            return []

        hits = []
        for item in payload[:limit]:
            hit = self._parse_place(item)
            if hit is not None:
                hits.append(hit)
        return hits

    def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeHit]:
        params = {
            **self._auth_params(),
            "lat": coordinate.lat,
            "lon": coordinate.lon,
            "format": "json",
            "addressdetails": 1,
            "zoom": 10,
        }
        payload = self._get(f"{self.base_url}{self.reverse_path}", params)
        if not isinstance(payload, dict) or "error" in payload:
            return None
        return self._parse_place(payload)

    @staticmethod
    def _normalize_address(raw: Any) -> Dict[str, str]:
        if not isinstance(raw, dict):
            return {}
        address: Dict[str, str] = {}
        for key in ("road", "house_number", "county", "state", "postcode", "country"):
            if raw.get(key):
                address[key] = str(raw[key])
        for key in _OSM_CITY_KEYS:
            if raw.get(key):
                address["city"] = str(raw[key])
                break
        return address

    @classmethod
    def _parse_place(cls, item: Any) -> Optional[GeocodeHit]:
        if not isinstance(item, dict):
            return None
        coordinate = Coordinate.try_parse(item.get("lat"), item.get("lon"))
        if coordinate is None:
            return None

        display_name = str(item.get("display_name") or "")
        address = cls._normalize_address(item.get("address"))
        name = (
            item.get("name")
            or address.get("city")
            or display_name.split(",")[0]
        )
        return GeocodeHit(
            coordinate=coordinate,
            display_name=display_name,
            name=str(name).strip(),
            address=address,
            place_type=str(item.get("type") or item.get("addresstype") or ""),
            place_class=str(item.get("class") or item.get("category") or ""),
            raw=item,
        )


class NominatimGeocoder(_OSMStyleGeocoder):
    """OpenStreetMap Nominatim. No key; identifies itself by User-Agent."""

    provider = ProviderName.NOMINATIM
    base_url = "https://nominatim.openstreetmap.org"


class LocationIQGeocoder(_OSMStyleGeocoder):
    """LocationIQ. Answers "Unable to geocode" with HTTP 404."""

    provider = ProviderName.LOCATIONIQ
    base_url = "https://us1.locationiq.com/v1"
    no_match_statuses = (404,)

    def _auth_params(self) -> Dict[str, Any]:
        return {"key": self.api_key}

    def verify_key(self) -> Tuple[bool, str]:
        # 400 means the key was accepted and only the query was rejected
        response = self._request(
            f"{self.base_url}{self.search_path}",
            {"key": self.api_key, "q": "test", "format": "json"},
            timeout=KEY_CHECK_TIMEOUT_S,
        )
        if response.ok or response.status_code == 400:
            return True, "LocationIQ API key is valid"
        error = self._json_object(response).get("error")
        return False, str(error or "Invalid LocationIQ API key")


class GoogleGeocoder(HttpGeocoder):
    """Google Maps Geocoding API."""

    provider = ProviderName.GOOGLE
    base_url = "https://maps.googleapis.com/maps/api/geocode/json"

    # address_components type -> semantic address field
    COMPONENT_FIELDS: ClassVar[Dict[str, str]] = {
        "street_number": "house_number",
        "route": "road",
        "locality": "city",
        "postal_town": "city",
        "administrative_area_level_2": "county",
        "administrative_area_level_1": "state",
        "postal_code": "postcode",
        "country": "country",
    }
    PLACE_TYPES: ClassVar[frozenset[str]] = frozenset(
        {"locality", "sublocality", "postal_town", "neighborhood", "colloquial_area"}
    )

    def search(self, query: str, limit: int = 1) -> List[GeocodeHit]:
        params = {"address": query, "key": self.api_key, "components": "country:US"}
        return self._parse_envelope(self._get(self.base_url, params), limit)

    def reverse_geocode(self, coordinate: Coordinate) -> Optional[GeocodeHit]:
        params = {"latlng": f"{coordinate.lat},{coordinate.lon}", "key": self.api_key}
        hits = self._parse_envelope(self._get(self.base_url, params), 1)
        return hits[0] if hits else None

    def verify_key(self) -> Tuple[bool, str]:
        response = self._request(
            self.base_url,
            {"address": "test", "key": self.api_key},
            timeout=KEY_CHECK_TIMEOUT_S,
        )
        try:
            body = response.json()
        except ValueError as e:
            raise ProviderTransientError(
                self.provider.value, "response body is not JSON", http_status=response.status_code
            ) from e
        if isinstance(body, dict) and body.get("status") == "REQUEST_DENIED":
            return False, "Invalid Google Maps API key"
        return True, "Google Maps API key is valid"

    def _parse_envelope(self, payload: Any, limit: int) -> List[GeocodeHit]:
        if not isinstance(payload, dict):
            return []

        status = payload.get("status")
        message = payload.get("error_message") or str(status)
        if status == "OVER_QUERY_LIMIT":
            raise ProviderRateLimitedError(self.provider.value, message)
        if status in ("REQUEST_DENIED", "INVALID_REQUEST"):
            raise ProviderPermanentError(self.provider.value, message)
        if status == "UNKNOWN_ERROR":
            raise ProviderTransientError(self.provider.value, message)
        if status != "OK":
            return []

        results = payload.get("results")
        if not isinstance(results, list):
            return []

        hits = []
        for item in results[:limit]:
            hit = self._parse_result(item)
            if hit is not None:
                hits.append(hit)
        return hits

    @classmethod
    def _parse_result(cls, item: Any) -> Optional[GeocodeHit]:
        if not isinstance(item, dict):
            return None
        location = _as_dict(_as_dict(item.get("geometry")).get("location"))
        coordinate = Coordinate.try_parse(location.get("lat"), location.get("lng"))
        if coordinate is None:
            return None

        address: Dict[str, str] = {}
        components = [c for c in _as_list(item.get("address_components")) if isinstance(c, dict)]
        for component in components:
            for ctype in _as_list(component.get("types")):
                field_name = cls.COMPONENT_FIELDS.get(ctype) if isinstance(ctype, str) else None
                if field_name and field_name not in address:
                    # state is conventionally the 2-letter code
                    key = "short_name" if field_name == "state" else "long_name"
                    address[field_name] = str(component.get(key) or component.get("long_name") or "")

        types = [t for t in _as_list(item.get("types")) if isinstance(t, str)]
        if cls.PLACE_TYPES.intersection(types):
            place_class = "place"
        elif any(t.startswith("administrative_area") for t in types):
            place_class = "boundary"
        else:
            place_class = types[0] if types else ""

        display_name = str(item.get("formatted_address") or "")
        first = components[0].get("long_name") if components else None
        return GeocodeHit(
            coordinate=coordinate,
            display_name=display_name,
            name=str(first or display_name.split(",")[0]).strip(),
            address=address,
            place_type=types[0] if types else "",
            place_class=place_class,
            raw=item,
        )


GEOCODERS: Dict[ProviderName, Type[HttpGeocoder]] = {
    ProviderName.NOMINATIM: NominatimGeocoder,
    ProviderName.LOCATIONIQ: LocationIQGeocoder,
    ProviderName.GOOGLE: GoogleGeocoder,
}


def select_provider(
    requested: Optional[str] = None,
    locationiq_key: Optional[str] = None,
    google_key: Optional[str] = None,
) -> ProviderConfig:
    """
    Pick exactly one provider for a request.

    Precedence:
    1. requested keyed provider whose key is present
    2. LocationIQ if its key is present
    3. Google if its key is present
    4. Nominatim

    Args:
        requested: Preferred provider name (unknown names are ignored)
        locationiq_key: LocationIQ API key
        google_key: Google Maps API key

    Returns:
        ProviderConfig with the provider's pacing interval
    """
    keys = {
        ProviderName.LOCATIONIQ: (locationiq_key or "").strip() or None,
        ProviderName.GOOGLE: (google_key or "").strip() or None,
    }

    preferred = ProviderName.parse(requested)
    if preferred in keys and keys[preferred]:
        name = preferred
    elif keys[ProviderName.LOCATIONIQ]:
        name = ProviderName.LOCATIONIQ
    elif keys[ProviderName.GOOGLE]:
        name = ProviderName.GOOGLE
    else:
        name = ProviderName.NOMINATIM

    return ProviderConfig(
        name=name,
        api_key=keys.get(name),
        min_interval_ms=PROVIDER_INTERVALS_MS[name],
    )


def build_geocoder(
    config: ProviderConfig,
    session: Optional[requests.Session] = None,
    timeout: float = DEFAULT_TIMEOUT_S,
    user_agent: str = DEFAULT_USER_AGENT,
    base_urls: Optional[Dict[ProviderName, Optional[str]]] = None,
) -> HttpGeocoder:
    """Instantiate the adapter for a ProviderConfig."""
    geocoder_cls = GEOCODERS[config.name]
    return geocoder_cls(
        api_key=config.api_key,
        base_url=(base_urls or {}).get(config.name),
        session=session,
        timeout=timeout,
        user_agent=user_agent,
    )
