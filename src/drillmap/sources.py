"""Geo-feature lookups keyed by administrative level and parent name."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any
from urllib.parse import quote

import requests

from .config import SourceConfig
from .models import FeatureCollection, Level

_LOGGER = logging.getLogger("drillmap.sources")


class FeatureSourceError(RuntimeError):
    """A level lookup could not produce a feature collection."""


class NetworkFailure(FeatureSourceError):
    """Request failed or the service answered with a non-success status."""


class DataFailure(FeatureSourceError):
    """Response body was not a usable feature collection."""


class GeoFeatureSource:
    """Base for feature lookups. Subclasses implement `fetch`."""

    async def fetch(self, level: Level, parent: str | None = None) -> FeatureCollection:
        raise NotImplementedError

    async def fetch_counties(self) -> FeatureCollection:
        return await self.fetch(Level.COUNTY)

    async def fetch_towns(self, county_name: str) -> FeatureCollection:
        return await self.fetch(Level.TOWN, county_name)

    async def fetch_villages(self, town_name: str) -> FeatureCollection:
        return await self.fetch(Level.VILLAGE, town_name)


def _require_parent(level: Level, parent: str | None) -> str:
    if level is Level.COUNTY:
        return ""
    if parent is None or not parent.strip():
        raise ValueError(f"A parent name is required to fetch {level.value} features")
    return parent.strip()


class HttpFeatureSource(GeoFeatureSource):
    """Client for the REST feature service; blocking calls run off the event loop."""

    def __init__(self, cfg: SourceConfig, session: requests.Session | None = None) -> None:
        self.cfg = cfg
        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": cfg.user_agent, "Accept": "application/json"})

    def url_for(self, level: Level, parent: str | None = None) -> str:
        name = _require_parent(level, parent)
        if level is Level.COUNTY:
            path = self.cfg.county_path
        elif level is Level.TOWN:
            path = self.cfg.town_path.format(name=quote(name, safe=""))
        else:
            path = self.cfg.village_path.format(name=quote(name, safe=""))
        return f"{self.cfg.base_url}{path}"

    async def fetch(self, level: Level, parent: str | None = None) -> FeatureCollection:
        url = self.url_for(level, parent)
        return await asyncio.to_thread(self._get_collection, url)

    def _get_collection(self, url: str) -> FeatureCollection:
        _LOGGER.debug("GET %s", url)
        try:
            response = self._session.get(url, timeout=self.cfg.request_timeout_s)
        except requests.RequestException as exc:
            raise NetworkFailure(f"Request to {url} failed: {exc}") from exc
        try:
            if not response.ok:
                raise NetworkFailure(f"HTTP {response.status_code} for {url}")
            try:
                payload = response.json()
            except ValueError as exc:
                raise DataFailure(f"Response from {url} is not JSON: {exc}") from exc
        finally:
            response.close()
        try:
            return FeatureCollection.from_mapping(payload)
        except ValueError as exc:
            raise DataFailure(f"Response from {url} is not a feature collection: {exc}") from exc


class FileFeatureSource(GeoFeatureSource):
    """Serves the three lookups from local GeoJSON datasets, filtered by parent name."""

    def __init__(self, county_path: Path, town_path: Path, village_path: Path) -> None:
        self.paths = {
            Level.COUNTY: county_path,
            Level.TOWN: town_path,
            Level.VILLAGE: village_path,
        }
        self._frames: dict[Level, Any] = {}

    async def fetch(self, level: Level, parent: str | None = None) -> FeatureCollection:
        name = _require_parent(level, parent)
        return await asyncio.to_thread(self._select, level, name)

    def _select(self, level: Level, parent: str) -> FeatureCollection:
        frame = self._load(level)
        if level is not Level.COUNTY:
            parent_key = Level.COUNTY.key if level is Level.TOWN else Level.TOWN.key
            if parent_key not in frame.columns:
                raise DataFailure(f"Column {parent_key} missing from {self.paths[level]}")
            frame = frame[frame[parent_key] == parent]
        try:
            return FeatureCollection.from_mapping({"features": list(frame.iterfeatures())})
        except ValueError as exc:
            raise DataFailure(f"Invalid features in {self.paths[level]}: {exc}") from exc

    def _load(self, level: Level) -> Any:
        cached = self._frames.get(level)
        if cached is not None:
            return cached
        path = self.paths[level]
        if not path.exists():
            raise DataFailure(f"Dataset file not found: {path}")
        gpd = self._require_geopandas()
        try:
            frame = gpd.read_file(path)
        except Exception as exc:
            raise DataFailure(f"Failed reading {path}: {exc}") from exc
        _LOGGER.info("Loaded %d %s features from %s", len(frame), level.value, path)
        self._frames[level] = frame
        return frame

    @staticmethod
    def _require_geopandas() -> Any:
        try:
            import geopandas as gpd
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError("geopandas is required for local GeoJSON datasets") from exc
        return gpd


def build_source(cfg: SourceConfig) -> GeoFeatureSource:
    if cfg.mode == "file":
        if cfg.files is None:
            raise ValueError("source.files is required when source.mode is 'file'")
        return FileFeatureSource(cfg.files.county, cfg.files.town, cfg.files.village)
    return HttpFeatureSource(cfg)

