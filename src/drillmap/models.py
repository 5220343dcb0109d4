"""Domain models shared across map modules."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Iterator, Mapping, Sequence

NAME_KEY = "name"
COUNTY_KEY = "COUNTYNAME"
TOWN_KEY = "TOWNNAME"
VILLAGE_KEY = "VILLAGENAM"

_POLYGONAL_TYPES = {"Polygon", "MultiPolygon"}


class Level(str, Enum):
    """Administrative granularity, coarsest first."""

    COUNTY = "county"
    TOWN = "town"
    VILLAGE = "village"

    @property
    def key(self) -> str:
        return {
            Level.COUNTY: COUNTY_KEY,
            Level.TOWN: TOWN_KEY,
            Level.VILLAGE: VILLAGE_KEY,
        }[self]


def _optional_str(props: Mapping[str, Any], key: str) -> str | None:
    value = props.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


@dataclass(frozen=True, slots=True, eq=False)
class Feature:
    """One administrative region: lon/lat geometry plus identifying properties."""

    geometry: Any
    properties: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> Feature:
        geometry_raw = data.get("geometry")
        if not isinstance(geometry_raw, Mapping):
            raise ValueError("Expected mapping for feature 'geometry'")
        geom_type = geometry_raw.get("type")
        if geom_type not in _POLYGONAL_TYPES:
            raise ValueError(f"Unsupported geometry type: {geom_type!r}")
        props_raw = data.get("properties")
        if props_raw is None:
            props_raw = {}
        if not isinstance(props_raw, Mapping):
            raise ValueError("Expected mapping for feature 'properties'")
        shape = _require_shapely_shape()
        return cls(geometry=shape(geometry_raw), properties=dict(props_raw))

    @property
    def county_name(self) -> str | None:
        return _optional_str(self.properties, COUNTY_KEY)

    @property
    def town_name(self) -> str | None:
        return _optional_str(self.properties, TOWN_KEY)

    @property
    def village_name(self) -> str | None:
        return _optional_str(self.properties, VILLAGE_KEY)

    @property
    def level(self) -> Level | None:
        """Most specific level this feature identifies, or None if it carries no identifier."""
        if self.village_name is not None:
            return Level.VILLAGE
        if self.town_name is not None:
            return Level.TOWN
        if self.county_name is not None:
            return Level.COUNTY
        return None

    @property
    def display_name(self) -> str:
        name = _optional_str(self.properties, NAME_KEY)
        if name is not None:
            return name
        return self.village_name or self.town_name or self.county_name or ""

    @property
    def key(self) -> tuple[str | None, ...]:
        return (
            self.county_name,
            self.town_name,
            self.village_name,
            _optional_str(self.properties, NAME_KEY),
        )


@dataclass(frozen=True, slots=True)
class FeatureCollection:
    features: tuple[Feature, ...] = ()

    @classmethod
    def from_mapping(cls, data: Any) -> FeatureCollection:
        if not isinstance(data, Mapping):
            raise ValueError("Expected mapping for feature collection")
        raw_features = data.get("features")
        if not isinstance(raw_features, list):
            raise ValueError("Expected list for 'features'")
        features: list[Feature] = []
        for idx, item in enumerate(raw_features):
            if not isinstance(item, Mapping):
                raise ValueError(f"Expected mapping at features[{idx}]")
            try:
                features.append(Feature.from_mapping(item))
            except ValueError as exc:
                raise ValueError(f"Invalid features[{idx}]: {exc}") from exc
        return cls(features=tuple(features))

    def __iter__(self) -> Iterator[Feature]:
        return iter(self.features)

    def __len__(self) -> int:
        return len(self.features)

    def names(self) -> Sequence[str]:
        return tuple(feature.display_name for feature in self.features)

    def find(self, name: str) -> Feature | None:
        for feature in self.features:
            if feature.display_name == name:
                return feature
        return None


@dataclass(frozen=True, slots=True)
class OutlyingOffset:
    """Absolute pixel position the region's translation is measured against."""

    offset_x: float
    offset_y: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.offset_x, self.offset_y)


@dataclass(frozen=True, slots=True)
class ViewportState:
    center: tuple[float, float]
    scale: float

    def interpolate(self, target: ViewportState, fraction: float) -> ViewportState:
        return ViewportState(
            center=(
                self.center[0] + (target.center[0] - self.center[0]) * fraction,
                self.center[1] + (target.center[1] - self.center[1]) * fraction,
            ),
            scale=self.scale + (target.scale - self.scale) * fraction,
        )


@dataclass(slots=True)
class SelectionState:
    feature: Feature | None = None
    name: str | None = None

    def clear(self) -> None:
        self.feature = None
        self.name = None


@lru_cache(maxsize=1)
def _require_shapely_shape() -> Any:
    try:
        from shapely.geometry import shape
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for feature geometry parsing") from exc
    return shape
