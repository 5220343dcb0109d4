"""Mercator projection with a movable center and scale."""

from __future__ import annotations

from functools import lru_cache
from typing import Any, Sequence

import numpy as np

from .config import MapConfig
from .models import ViewportState

# Spherical Mercator in metres; dividing by the radius gives x = lambda, y = ln(tan(pi/4 + phi/2)).
_SPHERE_RADIUS_M = 6378137.0
_RAW_MERCATOR_CRS = f"+proj=merc +R={_SPHERE_RADIUS_M:.0f} +lon_0=0 +x_0=0 +y_0=0 +units=m +no_defs"

_Point = tuple[float, float]
_Bounds = tuple[_Point, _Point]


class Projection:
    """Maps lon/lat to canvas pixels.

    The viewport center is placed on the translate point and the raw Mercator
    plane is scaled by ``scale`` pixels per radian, with y growing downwards.
    """

    def __init__(self, viewport: ViewportState, translate: _Point) -> None:
        self._transformer = _require_pyproj_transformer()
        self._translate = (float(translate[0]), float(translate[1]))
        self._viewport = viewport
        self._raw_center = self._raw(*viewport.center)

    @property
    def viewport(self) -> ViewportState:
        return self._viewport

    @property
    def center(self) -> _Point:
        return self._viewport.center

    @property
    def scale(self) -> float:
        return self._viewport.scale

    @property
    def translate(self) -> _Point:
        return self._translate

    def apply(self, viewport: ViewportState) -> None:
        self._viewport = viewport
        self._raw_center = self._raw(*viewport.center)

    def project(self, lon: float, lat: float) -> _Point:
        raw_x, raw_y = self._raw(lon, lat)
        k = self._viewport.scale
        x = self._translate[0] + k * (raw_x - self._raw_center[0])
        y = self._translate[1] - k * (raw_y - self._raw_center[1])
        return (x, y)

    def project_geometry(self, geometry: Any) -> Any:
        shapely_transform = _require_shapely_transform()
        return shapely_transform(geometry, self._project_coords)

    def path(self, geometry: Any) -> str:
        """SVG path data for a polygonal geometry, one closed subpath per ring."""
        parts: list[str] = []
        for ring in _iter_linear_rings(geometry):
            if len(ring) < 2:
                continue
            points = [self.project(lon, lat) for lon, lat in ring]
            head = f"M{format_number(points[0][0])},{format_number(points[0][1])}"
            tail = "".join(f"L{format_number(x)},{format_number(y)}" for x, y in points[1:])
            parts.append(f"{head}{tail}Z")
        return "".join(parts)

    def rings(self, geometry: Any) -> list[list[_Point]]:
        return [[self.project(lon, lat) for lon, lat in ring] for ring in _iter_linear_rings(geometry)]

    def bounds(self, geometry: Any) -> _Bounds:
        """Projected ((x0, y0), (x1, y1)) of the geometry, before any translation."""
        min_x, min_y, max_x, max_y = self.project_geometry(geometry).bounds
        return ((float(min_x), float(min_y)), (float(max_x), float(max_y)))

    def _raw(self, lon: float, lat: float) -> _Point:
        x, y = self._transformer.transform(float(lon), float(lat))
        return (float(x) / _SPHERE_RADIUS_M, float(y) / _SPHERE_RADIUS_M)

    def _project_coords(self, coords: np.ndarray) -> np.ndarray:
        raw_x, raw_y = self._transformer.transform(coords[:, 0], coords[:, 1])
        k = self._viewport.scale
        x = self._translate[0] + k * (np.asarray(raw_x) / _SPHERE_RADIUS_M - self._raw_center[0])
        y = self._translate[1] - k * (np.asarray(raw_y) / _SPHERE_RADIUS_M - self._raw_center[1])
        return np.column_stack((x, y))


def create_projection(cfg: MapConfig) -> Projection:
    """Fresh projection on the configured initial center and scale."""
    return Projection(
        ViewportState(center=cfg.initial_center, scale=cfg.initial_scale),
        translate=cfg.canvas_center,
    )


def geographic_centroid(geometry: Any) -> _Point:
    centroid = geometry.centroid
    return (float(centroid.x), float(centroid.y))


def _iter_linear_rings(geometry: Any) -> Sequence[Sequence[_Point]]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        rings: list[Sequence[_Point]] = [[(float(x), float(y)) for x, y, *_ in geometry.exterior.coords]]
        for interior in geometry.interiors:
            rings.append([(float(x), float(y)) for x, y, *_ in interior.coords])
        return rings

    if geom_type in {"MultiPolygon", "GeometryCollection"}:
        rings = []
        for part in geometry.geoms:
            rings.extend(_iter_linear_rings(part))
        return rings

    return []


def format_number(value: float) -> str:
    text = f"{value:.3f}".rstrip("0").rstrip(".")
    return "0" if text in {"", "-0"} else text


@lru_cache(maxsize=1)
def _require_pyproj_transformer() -> Any:
    try:
        from pyproj import Transformer
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pyproj is required for Mercator projection") from exc
    return Transformer.from_crs("EPSG:4326", _RAW_MERCATOR_CRS, always_xy=True)


def _require_shapely_transform() -> Any:
    try:
        from shapely import transform
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geometry projection") from exc
    return transform
