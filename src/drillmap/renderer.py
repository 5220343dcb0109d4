"""Per-level feature rendering onto the drawing surface."""

from __future__ import annotations

import logging
from typing import Any

from .models import Feature, FeatureCollection, Level
from .outlying import OffsetPolicy
from .projection import Projection
from .surface import BOXES_GROUP, MAP_GROUP, ClickHandler, DrawingSurface, SurfaceElement

ISLAND_BOX_CLASS = "island-box"

_LOGGER = logging.getLogger("drillmap.renderer")


def island_box_class(name: str) -> str:
    return f"{ISLAND_BOX_CLASS}-{name}"


class LevelRenderer:
    """Draws one administrative level; never clears what is already on the surface."""

    def __init__(self, surface: DrawingSurface, offsets: OffsetPolicy) -> None:
        self.surface = surface
        self.offsets = offsets

    def render(
        self,
        collection: FeatureCollection,
        level: Level,
        projection: Projection,
        *,
        on_click: ClickHandler | None = None,
        county_context: str | None = None,
    ) -> tuple[SurfaceElement, ...]:
        drawn: list[SurfaceElement] = []
        for feature in collection:
            offset = self.offsets.offset_for(feature, county_context)
            element = SurfaceElement(
                kind="path",
                geometry=feature.geometry,
                classes=(level.value,),
                translate=self.offsets.translation(offset),
                feature=feature,
                on_click=on_click,
            )
            drawn.append(self.surface.append(MAP_GROUP, element, projection))
            if level is Level.COUNTY:
                island = feature.county_name or feature.display_name
                if self.offsets.is_outlying(island):
                    self._draw_island_box(island, feature.geometry, offset, projection)

        if level is not Level.COUNTY and self.offsets.is_outlying(county_context) and len(collection):
            self._draw_island_box(
                county_context or "",
                _union([feature.geometry for feature in collection]),
                self.offsets.offset_for(collection.features[0], county_context),
                projection,
            )

        _LOGGER.debug("Rendered %d %s features", len(drawn), level.value)
        return tuple(drawn)

    def _draw_island_box(
        self,
        name: str,
        geometry: Any,
        offset: tuple[float, float],
        projection: Projection,
    ) -> SurfaceElement:
        # One frame per island name.
        self.surface.remove(BOXES_GROUP, island_box_class(name))
        box = SurfaceElement(
            kind="rect",
            geometry=geometry,
            classes=(ISLAND_BOX_CLASS, island_box_class(name)),
            translate=self.offsets.translation(offset),
        )
        return self.surface.append(BOXES_GROUP, box, projection)


def _union(geometries: list[Any]) -> Any:
    if len(geometries) == 1:
        return geometries[0]
    unary_union = _require_shapely_unary_union()
    return unary_union(geometries)


def _require_shapely_unary_union() -> Any:
    try:
        from shapely.ops import unary_union
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for geometry union in rendering") from exc
    return unary_union
