"""County → town → village drill-down state machine."""

from __future__ import annotations

import logging
from typing import Callable

from .animator import FramePacer, ViewportAnimator
from .config import AppConfig
from .highlight import SelectionHighlighter
from .models import Feature, FeatureCollection, Level, SelectionState
from .outlying import OffsetPolicy, OutlyingRegionRegistry
from .projection import Projection, create_projection
from .renderer import LevelRenderer
from .sources import FeatureSourceError, GeoFeatureSource
from .surface import BOXES_GROUP, MAP_GROUP, DrawingSurface

RegionSelectedListener = Callable[[str], None]

_LOGGER = logging.getLogger("drillmap.controller")


class DrillDownController:
    """Owns the current level, projection and rendered collection.

    Host → controller: `start()`, `reset()`.
    Controller → host: `on_region_selected(name)` after every successful click.
    """

    def __init__(
        self,
        cfg: AppConfig,
        source: GeoFeatureSource,
        *,
        registry: OutlyingRegionRegistry | None = None,
        on_region_selected: RegionSelectedListener | None = None,
        pacer: FramePacer | None = None,
    ) -> None:
        self.cfg = cfg
        self.source = source
        self.on_region_selected = on_region_selected
        self.surface = DrawingSurface(cfg.map.width, cfg.map.height)
        if registry is None:
            registry = OutlyingRegionRegistry.default(cfg.map)
        self.offsets = OffsetPolicy(registry, cfg.map)
        self.renderer = LevelRenderer(self.surface, self.offsets)
        self.highlighter = SelectionHighlighter(self.surface, self.offsets)
        self.animator = ViewportAnimator(self.surface, cfg.animation, pacer)
        self.selection = SelectionState()

        self._projection = create_projection(cfg.map)
        self._level = Level.COUNTY
        self._collection = FeatureCollection()
        self._county_context: str | None = None

    @property
    def level(self) -> Level:
        return self._level

    @property
    def projection(self) -> Projection:
        return self._projection

    @property
    def collection(self) -> FeatureCollection:
        return self._collection

    async def start(self) -> bool:
        """Fetch and draw the root counties on the empty surface."""
        counties = await self._fetch(Level.COUNTY, None)
        if counties is None:
            return False
        self._show(counties, Level.COUNTY, county_context=None)
        return True

    async def handle_click(self, feature: Feature) -> None:
        clicked_level = feature.level
        if clicked_level is None or clicked_level is Level.VILLAGE:
            _LOGGER.info("Reached the finest level at %s", feature.display_name)
            self._select(feature)
            return

        if clicked_level is Level.TOWN:
            parent = feature.town_name or ""
            zoom_scale = self.cfg.map.town_zoom_scale
            county_context = self._county_context or feature.county_name
        else:
            parent = feature.county_name or ""
            zoom_scale = self.cfg.map.county_zoom_scale
            county_context = parent

        next_level = Level.TOWN if clicked_level is Level.COUNTY else Level.VILLAGE
        children = await self._fetch(next_level, parent)
        if children is None:
            return

        self._clear_level(keep=feature)
        self._show(children, next_level, county_context=county_context)
        self.animator.zoom_to(feature, zoom_scale, self._projection)
        self._select(feature)

    async def click(self, name: str) -> bool:
        """Dispatch the click handler of the rendered feature with this display name."""
        element = self.surface.find(name)
        if element is None:
            _LOGGER.warning("No rendered feature named %s", name)
            return False
        await self.surface.click(element)
        return True

    async def reset(self) -> bool:
        """Back to the root counties with a fresh projection and no highlight.

        The host keeps its own notion of the selected region; it is not notified here.
        A click that resolves while the root counties are loading is discarded.
        """
        self._clear_to_root()
        counties = await self._fetch(Level.COUNTY, None)
        self._clear_to_root()
        if counties is None:
            return False
        self._show(counties, Level.COUNTY, county_context=None)
        return True

    async def reset_map(self) -> bool:
        return await self.reset()

    async def wait_idle(self) -> None:
        await self.animator.wait()

    async def _fetch(self, level: Level, parent: str | None) -> FeatureCollection | None:
        try:
            collection = await self.source.fetch(level, parent)
        except FeatureSourceError as exc:
            _LOGGER.error("Loading %s features for %s failed: %s", level.value, parent or "Taiwan", exc)
            return None
        _LOGGER.info("Loaded %d %s features for %s", len(collection), level.value, parent or "Taiwan")
        return collection

    def _show(self, collection: FeatureCollection, level: Level, *, county_context: str | None) -> None:
        self._level = level
        self._collection = collection
        self._county_context = county_context
        self.renderer.render(
            collection,
            level,
            self._projection,
            on_click=self.handle_click,
            county_context=county_context if level is not Level.COUNTY else None,
        )

    def _clear_to_root(self) -> None:
        self.animator.cancel()
        self.highlighter.clear()
        self.selection.clear()
        self._clear_level()
        self._projection = create_projection(self.cfg.map)
        self.offsets.clear()
        self._level = Level.COUNTY
        self._county_context = None

    def _clear_level(self, keep: Feature | None = None) -> None:
        self.surface.remove(BOXES_GROUP)
        self.surface.remove(MAP_GROUP)
        self._collection = FeatureCollection()
        self.offsets.retain(keep)

    def _select(self, feature: Feature) -> None:
        self.highlighter.highlight(feature, self._projection)
        self.selection.feature = feature
        self.selection.name = feature.display_name
        if self.on_region_selected is not None:
            self.on_region_selected(feature.display_name)
