"""Wizard-facing operations: counties within a radius, town enumeration
and provider key checks.

The HTTP layer hands raw request bodies to GeoResolutionService and maps
RequestPreconditionError to a 4xx; everything else comes back as a
best-effort response.
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Mapping, Optional

import requests
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .counties import CountyDataset
from .geocoding.models import (
    PROVIDER_INTERVALS_MS,
    Coordinate,
    ProviderConfig,
    ProviderName,
    ResolutionContext,
)
from .geocoding.providers import HttpGeocoder, build_geocoder, select_provider
from .geocoding.retry import RetryExecutor
from .geocoding.throttling import PacerRegistry
from .proximity import ProximityResolver
from .settings import Settings, settings as default_settings
from .towns import TownEnumerator
from .utils.errors import ProviderError, RequestPreconditionError

logger = logging.getLogger(__name__)


def _alias(*names: str) -> AliasChoices:
    return AliasChoices(*names)


def _state_code(value: str) -> str:
    value = value.strip().upper()
    if len(value) != 2 or not value.isalpha():
        raise ValueError("state code must be 2 letters")
    return value


class CountiesWithinRadiusRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    latitude: float = Field(ge=-90, le=90, validation_alias=_alias("latitude", "lat"))
    longitude: float = Field(ge=-180, le=180, validation_alias=_alias("longitude", "lng", "lon"))
    state_code: str = Field(validation_alias=_alias("state_code", "stateCode"))
    preferred_provider: Optional[str] = Field(
        default=None, validation_alias=_alias("preferred_provider", "preferredProvider", "provider")
    )
    locationiq_key: Optional[str] = Field(
        default=None, validation_alias=_alias("locationiq_key", "locationiqKey")
    )
    google_key: Optional[str] = Field(
        default=None, validation_alias=_alias("google_key", "googleMapsKey", "googleKey")
    )
    radius_miles: Optional[float] = Field(
        default=None, gt=0, validation_alias=_alias("radius_miles", "radiusMiles", "radius")
    )

    @field_validator("state_code")
    @classmethod
    def _two_letter_state(cls, value: str) -> str:
        return _state_code(value)


class CountiesWithinRadiusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    counties: list[str]
    center_county: Optional[str] = Field(alias="centerCounty")
    radius_miles: float = Field(alias="radiusMiles")


class TownsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    counties: list[str] = Field(min_length=1)
    state_code: str = Field(validation_alias=_alias("state_code", "stateCode", "state"))
    api_key: Optional[str] = Field(default=None, validation_alias=_alias("api_key", "apiKey"))
    provider: Optional[str] = None

    @field_validator("counties")
    @classmethod
    def _non_blank_counties(cls, value: list[str]) -> list[str]:
        value = [c.strip() for c in value if c and c.strip()]
        if not value:
            raise ValueError("at least one county is required")
        return value

    @field_validator("state_code")
    @classmethod
    def _two_letter_state(cls, value: str) -> str:
        return _state_code(value)


class TownsResponse(BaseModel):
    success: bool
    towns: list[str]
    count: int


class KeyCheckRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    provider: str = Field(validation_alias=_alias("provider", "type"))
    key: str = Field(min_length=1, validation_alias=_alias("key", "api_key", "apiKey"))

    @field_validator("key")
    @classmethod
    def _non_blank_key(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("API key is required")
        return value


class KeyCheckResponse(BaseModel):
    success: bool
    message: str


def _validate(model: type[BaseModel], payload: Any) -> Any:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        err = RequestPreconditionError.from_validation_error(model.__name__, e)
        logger.info(f"Rejected {model.__name__}:\n{err.summary()}")
        raise err


class GeoResolutionService:
    """Entry point for the setup wizard's geocoding operations.

    One instance is meant to live for the process (or the wizard session):
    it owns the HTTP session and the per-provider pacers, which are shared
    by all requests. Per-request state lives in ResolutionContext.

    Args:
        settings: Config store; defaults to environment/.env settings
        dataset: County dataset; loaded lazily from settings.county_data_path
        session: requests session used for every provider call
        sleep: Sleep function for pacing and backoff (injectable for tests)
        clock: Monotonic clock for pacing (injectable for tests)
    """

    def __init__(
        self,
        settings: Settings | None = None,
        dataset: CountyDataset | None = None,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.settings = settings or default_settings
        self._dataset = dataset
        self.session = session or requests.Session()
        self._sleep = sleep
        self.pacers = PacerRegistry(clock=clock, sleep=sleep)

    def __enter__(self) -> "GeoResolutionService":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def close(self) -> None:
        self.session.close()

    @property
    def dataset(self) -> CountyDataset:
        if self._dataset is None:
            try:
                self._dataset = CountyDataset.from_file(self.settings.county_data_path)
            except FileNotFoundError as e:
                raise RequestPreconditionError(str(e), status_code=404) from e
        return self._dataset

    def counties_for_state(self, state_code: str) -> list[str]:
        """County names of a state, empty when the state is unknown."""
        return self.dataset.for_state(state_code)

    def geocoder_for(self, config: ProviderConfig) -> HttpGeocoder:
        base_urls = {
            ProviderName.NOMINATIM: self.settings.nominatim_base_url,
            ProviderName.LOCATIONIQ: self.settings.locationiq_base_url,
            ProviderName.GOOGLE: self.settings.google_base_url,
        }
        return build_geocoder(
            config,
            session=self.session,
            timeout=self.settings.request_timeout_s,
            user_agent=self.settings.nominatim_user_agent,
            base_urls=base_urls,
        )

    def _executor(self) -> RetryExecutor:
        return RetryExecutor(max_retries=self.settings.max_retries, sleep=self._sleep)

    def _require_counties(self, state_code: str) -> list[str]:
        county_names = self.dataset.for_state(state_code)
        if not county_names:
            raise RequestPreconditionError(
                f"No county data for state '{state_code}'", status_code=404
            )
        return county_names

    def resolve_counties(
        self,
        payload: Mapping[str, Any] | CountiesWithinRadiusRequest,
        context: ResolutionContext | None = None,
    ) -> CountiesWithinRadiusResponse:
        """Counties within the radius of a point.

        Raises:
            RequestPreconditionError: missing/invalid fields, or no county
                data for the state. No provider call is made in that case.
        """
        request = _validate(CountiesWithinRadiusRequest, payload)

        county_names = self._require_counties(request.state_code)

        provider = select_provider(
            request.preferred_provider or self.settings.geocoding_provider,
            request.locationiq_key or self.settings.locationiq_api_key,
            request.google_key or self.settings.google_maps_api_key,
        )
        radius = request.radius_miles or self.settings.default_radius_miles
        logger.info(
            f"Resolving counties within {radius} miles in {request.state_code} "
            f"using {provider.name.value} ({len(county_names)} candidates)"
        )

        resolver = ProximityResolver(
            self.geocoder_for(provider),
            self.pacers.for_provider(provider),
            self._executor(),
        )
        result = resolver.resolve(
            Coordinate(request.latitude, request.longitude),
            request.state_code,
            county_names,
            radius_miles=radius,
            context=context,
        )
        return CountiesWithinRadiusResponse.model_validate(result.to_dict())

    def _enrichment_provider(self, request: TownsRequest) -> ProviderConfig | None:
        if request.api_key:
            name = ProviderName.parse(request.provider)
            if name is None or name is ProviderName.NOMINATIM:
                name = ProviderName.LOCATIONIQ
            return ProviderConfig(name, request.api_key, PROVIDER_INTERVALS_MS[name])

        saved = select_provider(
            request.provider or self.settings.geocoding_provider,
            self.settings.locationiq_api_key,
            self.settings.google_maps_api_key,
        )
        return saved if saved.is_paid else None

    def enumerate_towns(
        self,
        payload: Mapping[str, Any] | TownsRequest,
        context: ResolutionContext | None = None,
    ) -> TownsResponse:
        """Towns and cities inside the given counties.

        Raises:
            RequestPreconditionError: no counties, no state code, or no
                county data for the state
        """
        request = _validate(TownsRequest, payload)
        self._require_counties(request.state_code)

        free = ProviderConfig(
            ProviderName.NOMINATIM, None, PROVIDER_INTERVALS_MS[ProviderName.NOMINATIM]
        )
        enrichment = None
        paid = self._enrichment_provider(request)
        if paid is not None:
            enrichment = (self.geocoder_for(paid), self.pacers.for_provider(paid))

        enumerator = TownEnumerator(
            self.geocoder_for(free),
            self.pacers.for_provider(free),
            self._executor(),
        )
        result = enumerator.enumerate(
            request.counties,
            request.state_code,
            enrichment=enrichment,
            context=context,
        )
        return TownsResponse.model_validate(result.to_dict())

    def check_provider_key(self, payload: Mapping[str, Any] | KeyCheckRequest) -> KeyCheckResponse:
        """Verify a LocationIQ or Google key with one request to the provider.

        Unknown provider types and unreachable providers come back as
        ``success=False``; only a missing key is a precondition error.
        """
        request = _validate(KeyCheckRequest, payload)

        name = ProviderName.parse(request.provider)
        if name is None or name is ProviderName.NOMINATIM:
            return KeyCheckResponse(success=False, message="Unknown API key type")

        config = ProviderConfig(name, request.key, PROVIDER_INTERVALS_MS[name])
        pacer = self.pacers.for_provider(config)
        pacer.acquire()
        try:
            valid, message = self.geocoder_for(config).verify_key()
        except ProviderError as e:
            logger.warning(f"Could not verify {name.value} key: {e}")
            return KeyCheckResponse(success=False, message=str(e))
        finally:
            pacer.release()

        logger.info(f"{name.value} key check: {'valid' if valid else 'rejected'}")
        return KeyCheckResponse(success=valid, message=message)
