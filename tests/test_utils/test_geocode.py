"""Tests for the Nominatim geocoder and address cleanup."""

from unittest.mock import MagicMock

import pytest
import requests

from fieldcrm.config import Config
from fieldcrm.utils.geocode import (
    LatLng,
    NominatimGeocoder,
    address_variants,
    clean_street_name,
    strip_street_unit,
)


def _response(status=200, payload=None, bad_json=False):
    resp = MagicMock()
    resp.status_code = status
    resp.ok = status < 400
    if bad_json:
        resp.json.side_effect = ValueError("no json")
    else:
        resp.json.return_value = payload if payload is not None else []
    return resp


HIT = [{"lat": "54.3520", "lon": "18.6466"}]


@pytest.fixture
def session():
    return MagicMock()


@pytest.fixture
def sleeps():
    return []


@pytest.fixture
def geocoder(session, sleeps, monkeypatch):
    monkeypatch.setattr(Config, "GEOCODING_DISABLED", False)
    monkeypatch.setattr(Config, "GEOCODER_MAX_RETRIES", 2)
    return NominatimGeocoder(session=session, sleep=sleeps.append)


class TestAddressCleanup:
    def test_prefix_removed(self):
        assert clean_street_name("ul. Długa 1") == "Długa 1"
        assert clean_street_name("AL. Zwycięstwa 96") == "Zwycięstwa 96"

    def test_flat_suffix_removed(self):
        assert strip_street_unit("Piwna 15/3") == "Piwna 15"
        assert strip_street_unit("Lema 4/LU313") == "Lema 4"

    def test_shop_suffix_removed(self):
        assert strip_street_unit("Morska 12 LOK 3") == "Morska 12"

    def test_variants_without_duplicates(self):
        assert address_variants("ul. Piwna 15/3", "Gdańsk") == [
            "ul. Piwna 15/3, Gdańsk",
            "Piwna 15/3, Gdańsk",
            "Piwna 15, Gdańsk",
        ]
        assert address_variants("Długa 1", "Gdańsk") == ["Długa 1, Gdańsk"]


class TestGeocode:
    def test_hit(self, geocoder, session):
        session.get.return_value = _response(payload=HIT)
        assert geocoder.geocode("Długa 1, Gdańsk") == LatLng(54.352, 18.6466)
        kwargs = session.get.call_args.kwargs
        assert kwargs["params"]["q"] == "Długa 1, Gdańsk"
        assert kwargs["params"]["limit"] == 1
        assert "User-Agent" in kwargs["headers"]

    def test_cached(self, geocoder, session):
        session.get.return_value = _response(payload=HIT)
        geocoder.geocode("Długa 1, Gdańsk")
        geocoder.geocode(" Długa 1, Gdańsk ")
        assert session.get.call_count == 1

    def test_misses_not_cached(self, geocoder, session):
        session.get.return_value = _response(payload=[])
        assert geocoder.geocode("Nowhere") is None
        geocoder.geocode("Nowhere")
        assert session.get.call_count == 2

    def test_disabled(self, geocoder, session, monkeypatch):
        monkeypatch.setattr(Config, "GEOCODING_DISABLED", True)
        assert geocoder.geocode("Długa 1, Gdańsk") is None
        session.get.assert_not_called()

    def test_blank_address(self, geocoder, session):
        assert geocoder.geocode("  ") is None
        session.get.assert_not_called()

    def test_retries_on_server_error(self, geocoder, session, sleeps):
        session.get.side_effect = [
            _response(503), _response(429), _response(payload=HIT),
        ]
        assert geocoder.geocode("Długa 1") is not None
        assert sleeps == [0.4, 0.8]

    def test_gives_up_after_retries(self, geocoder, session, sleeps):
        session.get.return_value = _response(500)
        assert geocoder.geocode("Długa 1") is None
        assert session.get.call_count == 3
        assert len(sleeps) == 2

    def test_network_error_retried(self, geocoder, session, sleeps):
        session.get.side_effect = [
            requests.ConnectionError("down"), _response(payload=HIT),
        ]
        assert geocoder.geocode("Długa 1") is not None
        assert sleeps == [0.4]

    def test_network_error_exhausted(self, geocoder, session):
        session.get.side_effect = requests.Timeout("slow")
        assert geocoder.geocode("Długa 1") is None

    def test_retry_count_follows_config(self, geocoder, session, sleeps,
                                        monkeypatch):
        monkeypatch.setattr(Config, "GEOCODER_MAX_RETRIES", 0)
        session.get.return_value = _response(503)
        assert geocoder.geocode("Długa 1") is None
        assert session.get.call_count == 1
        assert sleeps == []

    def test_client_error_not_retried(self, geocoder, session, sleeps):
        session.get.return_value = _response(403)
        assert geocoder.geocode("Długa 1") is None
        assert sleeps == []

    def test_bad_json(self, geocoder, session):
        session.get.return_value = _response(bad_json=True)
        assert geocoder.geocode("Długa 1") is None

    def test_malformed_hit(self, geocoder, session):
        session.get.return_value = _response(payload=[{"lat": "north"}])
        assert geocoder.geocode("Długa 1") is None


class TestGeocodeAddress:
    def test_falls_back_to_simpler_forms(self, geocoder, session):
        session.get.side_effect = [
            _response(payload=[]), _response(payload=[]),
            _response(payload=HIT),
        ]
        assert geocoder.geocode_address("ul. Piwna 15/3", "Gdańsk") is not None
        queries = [c.kwargs["params"]["q"] for c in session.get.call_args_list]
        assert queries[-1] == "Piwna 15, Gdańsk"

    def test_stops_at_first_hit(self, geocoder, session):
        session.get.return_value = _response(payload=HIT)
        geocoder.geocode_address("ul. Piwna 15/3", "Gdańsk")
        assert session.get.call_count == 1
