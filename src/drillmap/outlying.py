"""Outlying-island registry and per-feature offset policy."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping

import yaml

from .config import MapConfig
from .models import Feature, OutlyingOffset

_Point = tuple[float, float]

# Shifts from the canvas center, in pixels, for counties drawn away from their true position.
DEFAULT_OUTLYING_SHIFTS: Mapping[str, _Point] = {
    "金門縣": (80.0, 0.0),
    "連江縣": (50.0, 100.0),
    "澎湖縣": (0.0, 0.0),
}


class OutlyingRegionRegistry:
    """Read-only mapping of county display name to absolute pixel offset."""

    def __init__(self, offsets: Mapping[str, OutlyingOffset]) -> None:
        self._offsets = dict(offsets)

    @classmethod
    def from_shifts(cls, shifts: Mapping[str, _Point], map_cfg: MapConfig) -> OutlyingRegionRegistry:
        cx, cy = map_cfg.canvas_center
        return cls(
            {
                name: OutlyingOffset(offset_x=cx + float(dx), offset_y=cy + float(dy))
                for name, (dx, dy) in shifts.items()
            }
        )

    @classmethod
    def default(cls, map_cfg: MapConfig) -> OutlyingRegionRegistry:
        return cls.from_shifts(DEFAULT_OUTLYING_SHIFTS, map_cfg)

    def get(self, name: str | None) -> OutlyingOffset | None:
        if name is None:
            return None
        return self._offsets.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._offsets

    def __len__(self) -> int:
        return len(self._offsets)

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._offsets))


def load_outlying_regions(path: Path, map_cfg: MapConfig) -> OutlyingRegionRegistry:
    """Load county shifts from YAML; a missing or empty file yields the built-in registry."""
    if not path.exists():
        return OutlyingRegionRegistry.default(map_cfg)
    with path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if raw is None:
        return OutlyingRegionRegistry.default(map_cfg)
    if not isinstance(raw, dict):
        raise ValueError(f"Expected mapping in {path}")

    shifts: dict[str, _Point] = {}
    for name_raw, value in raw.items():
        if not isinstance(name_raw, str) or not name_raw.strip():
            raise ValueError(f"Outlying region key must be a county name in {path}")
        name = name_raw.strip()
        if not isinstance(value, dict):
            raise ValueError(f"Outlying region value for {name} must be a mapping in {path}")
        shifts[name] = _parse_shift(value.get("shift_px"), name, path)
    return OutlyingRegionRegistry.from_shifts(shifts, map_cfg)


def _parse_shift(value: Any, name: str, path: Path) -> _Point:
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError(f"Expected [dx, dy] for {name}.shift_px in {path}")
    out: list[float] = []
    for item in value:
        if isinstance(item, bool) or not isinstance(item, (int, float)):
            raise ValueError(f"Expected numeric {name}.shift_px in {path}")
        out.append(float(item))
    return (out[0], out[1])


class OffsetPolicy:
    """Resolves and caches the fixed pixel offset of each rendered feature."""

    def __init__(self, registry: OutlyingRegionRegistry, map_cfg: MapConfig) -> None:
        self.registry = registry
        self._center = map_cfg.canvas_center
        self._cache: dict[tuple[str | None, ...], _Point] = {}

    @property
    def canvas_center(self) -> _Point:
        return self._center

    def offset_for(self, feature: Feature, county_context: str | None = None) -> _Point:
        name = county_context or feature.county_name or feature.display_name
        registered = self.registry.get(name)
        offset = registered.as_tuple() if registered is not None else self._center
        self._cache[feature.key] = offset
        return offset

    def cached_offset(self, feature: Feature) -> _Point:
        return self._cache.get(feature.key, self._center)

    def translation(self, offset: _Point) -> _Point:
        return (offset[0] - self._center[0], offset[1] - self._center[1])

    def is_outlying(self, name: str | None) -> bool:
        return self.registry.get(name) is not None

    def retain(self, feature: Feature | None) -> None:
        """Drop every cached offset except the one for `feature`."""
        kept = None if feature is None else self._cache.get(feature.key)
        self._cache.clear()
        if feature is not None and kept is not None:
            self._cache[feature.key] = kept

    def __len__(self) -> int:
        return len(self._cache)

    def clear(self) -> None:
        self._cache.clear()
