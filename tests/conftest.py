"""Shared fixtures: synthetic Taiwan features, an in-memory source and a fake frame clock."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from drillmap.config import AppConfig
from drillmap.models import FeatureCollection, Level
from drillmap.sources import GeoFeatureSource, NetworkFailure


def square(lon: float, lat: float, half: float = 0.05) -> dict[str, Any]:
    return {
        "type": "Polygon",
        "coordinates": [
            [
                [lon - half, lat - half],
                [lon + half, lat - half],
                [lon + half, lat + half],
                [lon - half, lat + half],
                [lon - half, lat - half],
            ]
        ],
    }


def feature(geometry: dict[str, Any], **props: str) -> dict[str, Any]:
    return {"type": "Feature", "geometry": geometry, "properties": props}


def county(name: str, lon: float, lat: float) -> dict[str, Any]:
    return feature(square(lon, lat, 0.2), name=name, COUNTYNAME=name)


def town(county_name: str, name: str, lon: float, lat: float) -> dict[str, Any]:
    return feature(square(lon, lat, 0.05), name=name, COUNTYNAME=county_name, TOWNNAME=name)


def village(county_name: str, town_name: str, name: str, lon: float, lat: float) -> dict[str, Any]:
    return feature(
        square(lon, lat, 0.01),
        name=name,
        COUNTYNAME=county_name,
        TOWNNAME=town_name,
        VILLAGENAM=name,
    )


COUNTIES = {
    "type": "FeatureCollection",
    "features": [
        county("臺北市", 121.55, 25.05),
        county("臺中市", 120.7, 24.15),
        county("澎湖縣", 119.6, 23.57),
        county("金門縣", 118.35, 24.45),
    ],
}

TOWNS = {
    "臺北市": {
        "features": [
            town("臺北市", "大安區", 121.54, 25.03),
            town("臺北市", "中山區", 121.53, 25.07),
        ]
    },
    "臺中市": {"features": [town("臺中市", "西屯區", 120.63, 24.18)]},
    "澎湖縣": {
        "features": [
            town("澎湖縣", "馬公市", 119.58, 23.56),
            town("澎湖縣", "湖西鄉", 119.65, 23.58),
        ]
    },
    "金門縣": {"features": [town("金門縣", "金城鎮", 118.32, 24.42)]},
}

VILLAGES = {
    "大安區": {
        "features": [
            village("臺北市", "大安區", "龍門里", 121.545, 25.03),
            village("臺北市", "大安區", "古莊里", 121.535, 25.025),
        ]
    },
    "金城鎮": {"features": [village("金門縣", "金城鎮", "東門里", 118.32, 24.43)]},
}


class FakeSource(GeoFeatureSource):
    """In-memory lookups that record every request in order."""

    def __init__(self) -> None:
        self.calls: list[tuple[Level, str | None]] = []
        self.failures: set[tuple[Level, str | None]] = set()

    async def fetch(self, level: Level, parent: str | None = None) -> FeatureCollection:
        self.calls.append((level, parent))
        await asyncio.sleep(0)
        if (level, parent) in self.failures:
            raise NetworkFailure(f"HTTP 500 for {level.value}/{parent}")
        if level is Level.COUNTY:
            return FeatureCollection.from_mapping(COUNTIES)
        table = TOWNS if level is Level.TOWN else VILLAGES
        return FeatureCollection.from_mapping(table.get(parent or "", {"features": []}))


class FakePacer:
    """Deterministic frame clock advancing a fixed step per frame."""

    def __init__(self, step_ms: float = 100.0) -> None:
        self.step_ms = step_ms
        self.time_ms = 0.0
        self.frames = 0

    def now(self) -> float:
        return self.time_ms

    async def next_frame(self) -> float:
        await asyncio.sleep(0)
        self.time_ms += self.step_ms
        self.frames += 1
        return self.time_ms


@pytest.fixture
def cfg(tmp_path: Path) -> AppConfig:
    return AppConfig.default(tmp_path)


@pytest.fixture
def source() -> FakeSource:
    return FakeSource()


@pytest.fixture
def pacer() -> FakePacer:
    return FakePacer()
