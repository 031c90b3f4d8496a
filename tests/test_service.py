import json
from unittest.mock import MagicMock

import pytest
import requests

from coverage_geo.counties import CountyDataset
from coverage_geo.geocoding.distance import haversine_miles
from coverage_geo.geocoding.models import Coordinate, ProviderName, ResolutionContext
from coverage_geo.geocoding.providers import (
    GoogleGeocoder,
    LocationIQGeocoder,
    NominatimGeocoder,
    select_provider,
)
from coverage_geo.service import GeoResolutionService
from coverage_geo.settings import Settings, settings as module_settings
from coverage_geo.utils.errors import RequestPreconditionError

DATASET = CountyDataset({
    "md": ["Baltimore City", "Baltimore County", "Anne Arundel County"],
    "DE": ["Kent", "New Castle", "Sussex"],
})

COUNTY_POINTS = {
    "Baltimore City, MD, USA": ("39.2904", "-76.6122"),
    "Baltimore County, MD, USA": ("39.4350", "-76.6122"),  # ~10 mi north
    "Anne Arundel County, MD, USA": ("38.9286", "-76.6122"),  # ~25 mi south
}


def _response(payload, status=200):
    response = MagicMock()
    response.status_code = status
    response.json.return_value = payload
    return response


def _nominatim_session():
    """Session answering like Nominatim for the Baltimore area."""
    session = MagicMock()

    def get(url, params=None, headers=None, timeout=None):
        if url.endswith("/reverse"):
            return _response({
                "lat": str(params["lat"]), "lon": str(params["lon"]),
                "display_name": "Baltimore, Maryland, United States",
                "address": {"city": "Baltimore", "county": "Baltimore City", "state": "Maryland"},
            })
        q = params["q"]
        if q in COUNTY_POINTS:
            lat, lon = COUNTY_POINTS[q]
            return _response([{"lat": lat, "lon": lon, "display_name": q, "type": "administrative", "class": "boundary"}])
        if q.startswith("cities in") or q.startswith("towns in"):
            return _response([
                {"lat": "39.40", "lon": "-76.60", "name": "Towson", "type": "town", "class": "place"},
                {"lat": "39.35", "lon": "-76.75", "name": "pikesville", "type": "hamlet", "class": "place"},
            ])
        return _response([])

    session.get.side_effect = get
    return session


def _service(session=None, clock=None, **settings):
    kwargs = {"sleep": clock.sleep, "clock": clock} if clock else {"sleep": lambda s: None}
    return GeoResolutionService(
        settings=Settings(_env_file=None, **settings),
        dataset=DATASET,
        session=session or MagicMock(),
        **kwargs,
    )


def test_resolve_counties_end_to_end(clock):
    session = _nominatim_session()
    service = _service(session, clock)
    context = ResolutionContext()

    response = service.resolve_counties(
        {"lat": 39.2904, "lng": -76.6122, "stateCode": "md"}, context=context
    )

    assert response.counties == ["Baltimore City", "Baltimore County"]
    assert response.center_county == "Baltimore City"
    assert response.radius_miles == 20
    assert response.model_dump(by_alias=True) == {
        "counties": ["Baltimore City", "Baltimore County"],
        "centerCounty": "Baltimore City",
        "radiusMiles": 20.0,
    }
    assert set(context.coordinate_cache) == {"Baltimore City", "Baltimore County", "Anne Arundel County"}
    for county in response.counties:
        assert haversine_miles(Coordinate(39.2904, -76.6122), context.coordinate_cache[county]) <= 20

    # 4 Nominatim calls, 1.1s apart
    assert session.get.call_count == 4
    assert clock.sleeps == pytest.approx([1.1, 1.1, 1.1])


def test_custom_radius_is_honoured():
    service = _service(_nominatim_session())
    response = service.resolve_counties(
        {"latitude": 39.2904, "longitude": -76.6122, "state_code": "MD", "radius_miles": 30}
    )
    assert response.counties == ["Baltimore City", "Baltimore County", "Anne Arundel County"]
    assert response.radius_miles == 30


@pytest.mark.parametrize("payload", [
    {"longitude": -76.6, "state_code": "MD"},
    {"latitude": 39.2, "state_code": "MD"},
    {"latitude": 39.2, "longitude": -76.6},
    {"latitude": 39.2, "longitude": -76.6, "state_code": "Maryland"},
    {"latitude": 139.2, "longitude": -76.6, "state_code": "MD"},
])
def test_resolve_preconditions_make_no_provider_calls(payload):
    session = MagicMock()
    service = _service(session)

    with pytest.raises(RequestPreconditionError) as excinfo:
        service.resolve_counties(payload)

    assert excinfo.value.status_code == 400
    assert excinfo.value.errors
    assert excinfo.value.summary().startswith("- ")
    session.get.assert_not_called()


def test_state_without_dataset_entry_is_a_precondition_error():
    session = MagicMock()
    service = _service(session)

    with pytest.raises(RequestPreconditionError) as excinfo:
        service.resolve_counties({"latitude": 44.0, "longitude": -72.7, "state_code": "VT"})

    assert excinfo.value.status_code == 404
    assert "VT" in str(excinfo.value)
    session.get.assert_not_called()


def test_missing_dataset_file_is_a_precondition_error(tmp_path):
    service = GeoResolutionService(
        settings=Settings(_env_file=None, county_data_path=tmp_path / "missing.json"),
        session=MagicMock(),
    )
    with pytest.raises(RequestPreconditionError) as excinfo:
        service.counties_for_state("MD")
    assert excinfo.value.status_code == 404


def test_dataset_is_loaded_from_settings_path(tmp_path):
    path = tmp_path / "us-counties.json"
    path.write_text(json.dumps({"DE": ["Kent", "New Castle", "Sussex"]}))
    service = GeoResolutionService(settings=Settings(_env_file=None, county_data_path=path), session=MagicMock())

    assert service.counties_for_state("de") == ["Kent", "New Castle", "Sussex"]
    assert service.counties_for_state("MD") == []


def test_geocoder_for_dispatches_by_provider():
    service = _service()
    assert isinstance(service.geocoder_for(select_provider("google", google_key="g")), GoogleGeocoder)
    assert isinstance(service.geocoder_for(select_provider(locationiq_key="liq")), LocationIQGeocoder)


def test_request_keys_override_saved_provider():
    session = MagicMock()
    session.get.return_value = _response({"status": "ZERO_RESULTS", "results": []})
    service = _service(session, locationiq_api_key="saved-liq")

    service.resolve_counties({
        "latitude": 39.29, "longitude": -76.61, "state_code": "DE",
        "preferredProvider": "google", "googleMapsKey": "request-google",
    })

    params = [call.kwargs["params"] for call in session.get.call_args_list]
    assert params and all(p["key"] == "request-google" for p in params)


def test_settings_base_url_override_reaches_geocoder():
    service = _service(nominatim_base_url="http://localhost:8767/")
    geocoder = service.geocoder_for(select_provider())
    assert isinstance(geocoder, NominatimGeocoder)
    assert geocoder.base_url == "http://localhost:8767"


def test_resolve_uses_saved_google_key_when_request_has_none():
    session = MagicMock()
    session.get.return_value = _response({"status": "ZERO_RESULTS", "results": []})
    service = _service(session, google_maps_api_key="saved-google")

    response = service.resolve_counties({"latitude": 39.29, "longitude": -76.61, "state_code": "DE"})

    assert response.counties == []
    assert response.center_county is None
    urls = {call.args[0] for call in session.get.call_args_list}
    assert urls == {"https://maps.googleapis.com/maps/api/geocode/json"}


def test_enumerate_towns_end_to_end():
    session = _nominatim_session()
    service = _service(session)

    response = service.enumerate_towns({"counties": ["Baltimore County"], "stateCode": "MD"})

    assert response.success is True
    assert response.towns == ["pikesville", "Towson"]
    assert response.count == 2
    assert session.get.call_count == 3


@pytest.mark.parametrize("payload", [
    {"counties": [], "state_code": "MD"},
    {"counties": ["  "], "state_code": "MD"},
    {"counties": ["Cecil"]},
    {"counties": ["Cecil"], "state_code": " "},
])
def test_enumerate_preconditions(payload):
    session = MagicMock()
    with pytest.raises(RequestPreconditionError):
        _service(session).enumerate_towns(payload)
    session.get.assert_not_called()


def test_enumerate_with_api_key_enriches_via_paid_provider():
    session = _nominatim_session()
    service = _service(session)

    service.enumerate_towns({"counties": ["Cecil"], "state_code": "MD", "apiKey": "liq"})

    enrichment = [c for c in session.get.call_args_list if c.kwargs["params"].get("key") == "liq"]
    assert len(enrichment) == 1
    assert enrichment[0].args[0] == "https://us1.locationiq.com/v1/search"


def test_enumerate_without_any_key_uses_only_nominatim():
    session = _nominatim_session()
    _service(session).enumerate_towns({"counties": ["Cecil"], "state_code": "MD"})
    urls = {c.args[0] for c in session.get.call_args_list}
    assert urls == {"https://nominatim.openstreetmap.org/search"}


def test_service_closes_session():
    session = MagicMock()
    with _service(session):
        pass
    session.close.assert_called_once()


def test_pacers_are_shared_between_requests(clock):
    service = _service(_nominatim_session(), clock)
    service.enumerate_towns({"counties": ["Cecil"], "state_code": "MD"})
    service.enumerate_towns({"counties": ["Kent"], "state_code": "MD"})
    # six Nominatim calls, every one after the first paced
    assert clock.sleeps == pytest.approx([1.1] * 5)
    assert service.pacers.for_provider(ProviderName.NOMINATIM) is service.pacers.for_provider(ProviderName.NOMINATIM)


def test_malformed_google_results_do_not_abort_the_request():
    junk_components = {
        "formatted_address": "Somewhere, DE, USA",
        "geometry": {"location": {"lat": 39.29, "lng": -76.61}},
        "address_components": ["junk"],
    }
    list_location = {"geometry": {"location": [39.29, -76.61]}, "address_components": ["junk"]}

    def get(url, params=None, headers=None, timeout=None):
        result = list_location if "latlng" in params else junk_components
        return _response({"status": "OK", "results": [result]})

    session = MagicMock()
    session.get.side_effect = get
    service = _service(session, google_maps_api_key="g")

    response = service.resolve_counties({"latitude": 39.29, "longitude": -76.61, "state_code": "DE"})

    assert response.counties == ["Kent", "New Castle", "Sussex"]
    assert response.center_county is None


def test_enumerate_towns_for_state_without_dataset_entry():
    session = MagicMock()
    with pytest.raises(RequestPreconditionError) as excinfo:
        _service(session).enumerate_towns({"counties": ["Cecil"], "state_code": "ZZ"})

    assert excinfo.value.status_code == 404
    assert "ZZ" in str(excinfo.value)
    session.get.assert_not_called()


def test_enumerate_towns_requires_two_letter_state():
    session = MagicMock()
    with pytest.raises(RequestPreconditionError) as excinfo:
        _service(session).enumerate_towns({"counties": ["Cecil"], "state": "Maryland"})

    assert excinfo.value.status_code == 400
    session.get.assert_not_called()


def test_service_defaults_to_module_settings():
    assert GeoResolutionService(dataset=DATASET, session=MagicMock()).settings is module_settings


# --- provider key checks -----------------------------------------------------------

def test_check_locationiq_key(clock):
    session = MagicMock()
    session.get.return_value = _response([])
    session.get.return_value.ok = True
    service = _service(session, clock)

    response = service.check_provider_key({"type": "locationiq", "key": " liq "})

    assert response.model_dump() == {"success": True, "message": "LocationIQ API key is valid"}
    _, kwargs = session.get.call_args
    assert kwargs["params"]["key"] == "liq"

    service.check_provider_key({"provider": "locationiq", "key": "liq"})
    assert clock.sleeps == pytest.approx([1.2])


def test_check_google_key_denied():
    session = MagicMock()
    session.get.return_value = _response({"status": "REQUEST_DENIED", "error_message": "bad key"})

    response = _service(session).check_provider_key({"provider": "google", "apiKey": "nope"})

    assert response.success is False
    assert response.message == "Invalid Google Maps API key"
    assert session.get.call_count == 1


def test_check_key_network_error_is_reported_not_raised():
    session = MagicMock()
    session.get.side_effect = requests.exceptions.Timeout("slow")

    response = _service(session).check_provider_key({"provider": "google", "key": "g"})

    assert response.success is False
    assert "timeout" in response.message
    assert session.get.call_count == 1


@pytest.mark.parametrize("provider", ["openai", "nominatim", ""])
def test_check_key_unknown_type(provider):
    session = MagicMock()
    response = _service(session).check_provider_key({"provider": provider, "key": "k"})

    assert response.model_dump() == {"success": False, "message": "Unknown API key type"}
    session.get.assert_not_called()


def test_check_key_requires_a_key():
    session = MagicMock()
    with pytest.raises(RequestPreconditionError):
        _service(session).check_provider_key({"provider": "google", "key": "  "})
    session.get.assert_not_called()
