"""Tests for the GeoPixels client, wire schemas, session and energy.

The HTTP layer is a ``MagicMock`` standing in for ``requests.Session``.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests
import yaml

from fakes import RED, sample

from ghostpixel.canvas.grid import GridCoordinate
from ghostpixel.client.account import AccountState, EnergyTracker
from ghostpixel.client.geopixels import GeoPixelsClient
from ghostpixel.client.schemas import TileRecord, TilesResponse
from ghostpixel.client.session import CredentialFileRelogin, Session
from ghostpixel.errors import ConfigError, NetworkError


def _response(status: int = 200, json_body=None, text: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.ok = 200 <= status < 300
    resp.text = text
    if isinstance(json_body, Exception):
        resp.json.side_effect = json_body
    else:
        resp.json.return_value = json_body
    return resp


@pytest.fixture
def http() -> MagicMock:
    mock = MagicMock()
    mock.headers = {}
    return mock


def _client(http: MagicMock, session: Session, **kwargs) -> GeoPixelsClient:
    return GeoPixelsClient(session, http=http, retry_interval=0, **kwargs)


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class TestSchemas:
    def test_tiles_response_aliases(self) -> None:
        resp = TilesResponse.model_validate({
            "ServerTimestamp": 17,
            "Tiles": {"0_0": {"Type": "DELTA", "Pixels": [[1, 2, 3, 4]]}},
        })
        assert resp.server_timestamp == 17
        assert resp.tiles["0_0"].type == "delta"
        assert resp.tiles["0_0"].pixels == [[1, 2, 3, 4]]

    def test_nulls_become_empty(self) -> None:
        resp = TilesResponse.model_validate({"ServerTimestamp": None, "Tiles": None})
        assert resp.server_timestamp == 0
        assert resp.tiles == {}

    def test_full_tile_record(self) -> None:
        record = TileRecord.model_validate({"Type": "full", "ColorWebP": "abc"})
        assert record.color_webp == "abc"
        assert record.pixels == []


# ---------------------------------------------------------------------------
# Tile requests
# ---------------------------------------------------------------------------


class TestFetchTiles:
    def test_payload_and_parse(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(
            json_body={"ServerTimestamp": 5, "Tiles": {"0_0": {"Type": "delta", "Pixels": []}}}
        )
        client = _client(http, session, base_url="https://example.test/")

        resp = asyncio.run(client.fetch_tiles([GridCoordinate(0, 0), GridCoordinate(0, 1000)], 3))

        url = http.post.call_args.args[0]
        body = http.post.call_args.kwargs["json"]
        assert url == "https://example.test/GetPixelsCached"
        assert body == {
            "Tiles": [
                {"x": 0, "y": 0, "timestamp": 3},
                {"x": 0, "y": 1000, "timestamp": 3},
            ]
        }
        assert resp.server_timestamp == 5

    def test_retries_transport_errors(self, http: MagicMock, session: Session) -> None:
        http.post.side_effect = [
            requests.ConnectionError("reset"),
            _response(json_body={"ServerTimestamp": 1, "Tiles": {}}),
        ]
        client = _client(http, session, retry_attempts=3)
        resp = asyncio.run(client.fetch_tiles([GridCoordinate(0, 0)], 0))
        assert resp.server_timestamp == 1
        assert http.post.call_count == 2

    def test_gives_up_after_attempts(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(status=503, text="busy")
        client = _client(http, session, retry_attempts=2)
        with pytest.raises(NetworkError, match="after 2 attempts"):
            asyncio.run(client.fetch_tiles([GridCoordinate(0, 0)], 0))
        assert http.post.call_count == 2

    def test_malformed_body(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(json_body=ValueError("no json"))
        client = _client(http, session)
        with pytest.raises(NetworkError, match="Malformed"):
            asyncio.run(client.fetch_tiles([GridCoordinate(0, 0)], 0))
        assert http.post.call_count == 1

    def test_schema_mismatch(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(json_body={"Tiles": {"0_0": {"Pixels": []}}})
        client = _client(http, session)
        with pytest.raises(NetworkError):
            asyncio.run(client.fetch_tiles([GridCoordinate(0, 0)], 0))


# ---------------------------------------------------------------------------
# Placement
# ---------------------------------------------------------------------------


class TestPlacePixels:
    def test_wire_body(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(status=200, text="ok")
        client = _client(http, session)

        result = asyncio.run(client.place_pixels([sample(3, -4, RED)]))

        assert result.ok and result.placed == 1
        assert http.post.call_args.args[0].endswith("/PlacePixel")
        assert http.post.call_args.kwargs["json"] == {
            "Token": "tok-1",
            "Subject": "sub",
            "UserId": 42,
            "Pixels": [{"GridX": 3, "GridY": -4, "Color": 0xFF0000, "UserId": 42}],
        }

    def test_success_consumes_energy(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(status=200)
        energy = EnergyTracker(5, 10, 60.0, clock=lambda: 0.0)
        client = _client(http, session, energy=energy)
        asyncio.run(client.place_pixels([sample(0, 0, RED), sample(1, 0, RED)]))
        assert energy.current == 3

    def test_auth_expired_is_not_raised(self, http: MagicMock, session: Session) -> None:
        http.post.return_value = _response(status=401, text="expired")
        energy = EnergyTracker(5, 10, 60.0, clock=lambda: 0.0)
        client = _client(http, session, energy=energy)
        result = asyncio.run(client.place_pixels([sample(0, 0, RED)]))
        assert result.auth_expired and not result.ok
        assert result.body == "expired"
        assert energy.current == 5

    def test_transport_error_raises(self, http: MagicMock, session: Session) -> None:
        http.post.side_effect = requests.Timeout("slow")
        client = _client(http, session)
        with pytest.raises(NetworkError):
            asyncio.run(client.place_pixels([sample(0, 0, RED)]))

    def test_context_manager_closes(self, http: MagicMock, session: Session) -> None:
        with _client(http, session, user_agent="ghostpixel-test") as client:
            assert http.headers["User-Agent"] == "ghostpixel-test"
        http.close.assert_called_once()
        assert client.place_url.endswith("/PlacePixel")


# ---------------------------------------------------------------------------
# Energy
# ---------------------------------------------------------------------------


class TestEnergyTracker:
    def test_regenerates_up_to_maximum(self) -> None:
        now = [0.0]
        energy = EnergyTracker(2, 5, 10.0, clock=lambda: now[0])
        assert energy.current == 2
        now[0] = 25.0
        assert energy.current == 4
        now[0] = 1000.0
        assert energy.current == 5

    def test_consume_and_reset(self) -> None:
        now = [0.0]
        energy = EnergyTracker(5, 5, 10.0, clock=lambda: now[0])
        energy.consume(4)
        assert energy.current == 1
        energy.reset(3, maximum=8, seconds_per_pixel=2.0)
        assert (energy.current, energy.maximum, energy.seconds_per_pixel) == (3, 8, 2.0)

    def test_zero_rate_is_always_full(self) -> None:
        energy = EnergyTracker(0, 7, 0)
        assert energy.current == 7

    def test_rejects_negative(self) -> None:
        with pytest.raises(ValueError):
            EnergyTracker(0, -1, 1.0)

    def test_account_allowed_ids(self) -> None:
        account = AccountState.from_colors(["#ff0000", 255], EnergyTracker(0, 1, 1.0))
        assert account.allowed_ids == frozenset({0xFF0000, 255})


# ---------------------------------------------------------------------------
# Session / relogin
# ---------------------------------------------------------------------------


class TestRelogin:
    def _write(self, path: Path, token: str) -> None:
        path.write_text(yaml.safe_dump({"token": token, "subject": "s2", "user_id": 7}))

    def test_fresh_token_succeeds(self, tmp_path: Path) -> None:
        path = tmp_path / "creds.yaml"
        self._write(path, "new")
        session = Session(token="old")
        assert asyncio.run(CredentialFileRelogin(session, path)()) is True
        assert (session.token, session.subject, session.user_id) == ("new", "s2", 7)

    def test_same_token_fails(self, tmp_path: Path) -> None:
        path = tmp_path / "creds.yaml"
        self._write(path, "old")
        session = Session(token="old")
        assert asyncio.run(CredentialFileRelogin(session, path)()) is False
        assert session.token == ""

    def test_missing_file_fails(self, tmp_path: Path) -> None:
        session = Session(token="old")
        assert asyncio.run(CredentialFileRelogin(session, tmp_path / "x.yaml")()) is False
        assert not session.logged_in

    def test_from_file_requires_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "creds.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="mapping"):
            Session.from_file(path)
