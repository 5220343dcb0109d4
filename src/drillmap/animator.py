"""Animated viewport transitions."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from .config import AnimationConfig
from .models import Feature, ViewportState
from .projection import Projection, geographic_centroid
from .surface import DrawingSurface

_LOGGER = logging.getLogger("drillmap.animator")


class FramePacer(Protocol):
    """Host frame clock; timestamps are milliseconds."""

    def now(self) -> float: ...

    async def next_frame(self) -> float: ...


class AsyncioFramePacer:
    def __init__(self, interval_ms: float) -> None:
        self.interval_ms = interval_ms

    def now(self) -> float:
        return asyncio.get_running_loop().time() * 1000.0

    async def next_frame(self) -> float:
        await asyncio.sleep(self.interval_ms / 1000.0)
        return self.now()


def ease_quad_in_out(t: float) -> float:
    t *= 2.0
    if t <= 1.0:
        return t * t / 2.0
    t -= 1.0
    return (t * (2.0 - t) + 1.0) / 2.0


class ViewportAnimator:
    """Sole writer of the projection's viewport once a map is on screen.

    Starting a zoom cancels any zoom still in flight, so two animations never
    interleave frames against the same projection.
    """

    def __init__(
        self,
        surface: DrawingSurface,
        cfg: AnimationConfig,
        pacer: FramePacer | None = None,
    ) -> None:
        self.surface = surface
        self.duration_ms = cfg.duration_ms
        self.pacer: FramePacer = pacer or AsyncioFramePacer(cfg.frame_interval_ms)
        self._task: asyncio.Task[ViewportState] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def zoom_to(
        self,
        feature: Feature,
        target_scale: float,
        projection: Projection,
    ) -> asyncio.Task[ViewportState] | None:
        """Start animating towards the feature's centroid; None when already there."""
        self.cancel()
        start = projection.viewport
        target = ViewportState(center=geographic_centroid(feature.geometry), scale=float(target_scale))
        if start == target:
            return None
        _LOGGER.debug(
            "Zoom to %s: center %s -> %s, scale %.1f -> %.1f",
            feature.display_name,
            start.center,
            target.center,
            start.scale,
            target.scale,
        )
        self._task = asyncio.get_running_loop().create_task(self._animate(projection, start, target))
        return self._task

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    async def wait(self) -> None:
        task = self._task
        if task is None:
            return
        try:
            await task
        except asyncio.CancelledError:
            if not task.cancelled():
                raise

    async def _animate(
        self,
        projection: Projection,
        start: ViewportState,
        target: ViewportState,
    ) -> ViewportState:
        started_at = self.pacer.now()
        while True:
            frame_at = await self.pacer.next_frame()
            progress = min(max((frame_at - started_at) / self.duration_ms, 0.0), 1.0)
            eased = ease_quad_in_out(progress)
            viewport = target if eased >= 1.0 else start.interpolate(target, eased)
            projection.apply(viewport)
            self.surface.redraw(projection)
            if eased >= 1.0:
                return viewport
