"""Single-feature selection outline."""

from __future__ import annotations

from .models import Feature
from .outlying import OffsetPolicy
from .projection import Projection
from .surface import HIGHLIGHT_GROUP, DrawingSurface, SurfaceElement

HIGHLIGHT_CLASS = "highlighted"


class SelectionHighlighter:
    def __init__(self, surface: DrawingSurface, offsets: OffsetPolicy) -> None:
        self.surface = surface
        self.offsets = offsets
        self._current: Feature | None = None

    @property
    def current(self) -> Feature | None:
        return self._current

    def highlight(self, feature: Feature, projection: Projection) -> SurfaceElement:
        """Replace any existing highlight with one outline placed like the feature's base path."""
        self.surface.remove(HIGHLIGHT_GROUP)
        offset = self.offsets.cached_offset(feature)
        element = SurfaceElement(
            kind="path",
            geometry=feature.geometry,
            classes=(HIGHLIGHT_CLASS,),
            translate=self.offsets.translation(offset),
            feature=feature,
        )
        self._current = feature
        return self.surface.append(HIGHLIGHT_GROUP, element, projection)

    def clear(self) -> None:
        self.surface.remove(HIGHLIGHT_GROUP)
        self._current = None
