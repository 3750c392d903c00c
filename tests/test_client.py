from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from shinemap.errors import ConfigLoadError, UploadError
from shinemap.grid.aggregator import GridAggregator
from shinemap.tracking.pulse import Pulse, PulseType
from shinemap.uplink.client import CellSummary, RemoteStore


def _call(handler, method: str, *args, **kwargs):
    async def _run():
        store = RemoteStore("http://store.test", transport=httpx.MockTransport(handler))
        try:
            return await getattr(store, method)(*args, **kwargs)
        finally:
            await store.aclose()

    return asyncio.run(_run())


def _batch():
    agg = GridAggregator()
    agg.merge(Pulse(lat=22.3, lng=114.17, type=PulseType.RESTING, intensity=5, floor=1))
    return agg.drain()


def test_upload_posts_pulses_with_credential() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"success": True})

    _call(handler, "upload", _batch(), "token-123")

    (request,) = seen
    assert request.method == "POST"
    assert request.url.path == "/api/shine/pulse"
    assert request.headers["Authorization"] == "token-123"
    assert json.loads(request.content) == {
        "pulses": [{"lat": 22.3, "lng": 114.17, "type": "resting", "intensity": 5, "floor": 1}]
    }


def test_upload_rejection_raises_upload_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(401, json={"error": "expired"})

    with pytest.raises(UploadError) as info:
        _call(handler, "upload", _batch(), "stale")
    assert info.value.status_code == 401


def test_upload_network_failure_raises_upload_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(UploadError):
        _call(handler, "upload", _batch(), "tok")


def test_fetch_config_returns_document() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/shine-config"
        return httpx.Response(200, json={"restingThresholdMs": 20000})

    assert _call(handler, "fetch_config") == {"restingThresholdMs": 20000}


@pytest.mark.parametrize(
    "response",
    [
        httpx.Response(500, text="boom"),
        httpx.Response(200, text="<html>"),
        httpx.Response(200, json=[1, 2, 3]),
    ],
)
def test_fetch_config_failures_raise_config_load_error(response: httpx.Response) -> None:
    with pytest.raises(ConfigLoadError):
        _call(lambda request: response, "fetch_config")


def test_fetch_cells_parses_bounding_box_query() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/shine/map"
        assert request.url.params["north"] == "22.31"
        return httpx.Response(200, json={
            "success": True,
            "cells": [
                {
                    "gridId": "223000_1141700",
                    "center": {"lat": 22.3, "lng": 114.17},
                    "energy": 42.5,
                    "stats": {"resting": 3, "passing": 7},
                    "floors": {"0": 30, "2": 12.5},
                },
                {"gridId": "broken"},
            ],
        })

    cells = _call(handler, "fetch_cells", north=22.31, south=22.29, east=114.18, west=114.16)
    assert cells == [
        CellSummary(
            grid_id="223000_1141700",
            center=(22.3, 114.17),
            energy=42.5,
            resting=3,
            passing=7,
            floors={0: 30.0, 2: 12.5},
        )
    ]
