"""In-memory drawing surface with SVG serialization."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from pathlib import Path
from typing import Any, Callable, Iterable

from .models import Feature
from .projection import Projection
from .projection import format_number as _fmt

BOXES_GROUP = "boxes-group"
MAP_GROUP = "map-group"
HIGHLIGHT_GROUP = "highlight-group"
GROUP_ORDER = (BOXES_GROUP, MAP_GROUP, HIGHLIGHT_GROUP)

ClickHandler = Callable[[Feature], Any]


@dataclass(slots=True)
class SurfaceElement:
    """A path or rect bound to the lon/lat geometry it was drawn from."""

    kind: str
    geometry: Any
    classes: tuple[str, ...]
    translate: tuple[float, float] = (0.0, 0.0)
    feature: Feature | None = None
    on_click: ClickHandler | None = None
    d: str = ""
    rect: tuple[float, float, float, float] = (0.0, 0.0, 0.0, 0.0)

    def redraw(self, projection: Projection) -> None:
        if self.kind == "path":
            self.d = projection.path(self.geometry)
            return
        (x0, y0), (x1, y1) = projection.bounds(self.geometry)
        self.rect = (x0, y0, x1 - x0, y1 - y0)

    def has_class(self, name: str) -> bool:
        return name in self.classes

    @property
    def transform(self) -> str:
        return f"translate({_fmt(self.translate[0])}, {_fmt(self.translate[1])})"


class DrawingSurface:
    """Three stacked groups: island boxes below, map paths, highlight on top."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self._groups: dict[str, list[SurfaceElement]] = {name: [] for name in GROUP_ORDER}

    def append(self, group: str, element: SurfaceElement, projection: Projection) -> SurfaceElement:
        element.redraw(projection)
        self._group(group).append(element)
        return element

    def remove(self, group: str, class_name: str | None = None) -> int:
        elements = self._group(group)
        if class_name is None:
            removed = len(elements)
            elements.clear()
            return removed
        kept = [element for element in elements if not element.has_class(class_name)]
        removed = len(elements) - len(kept)
        elements[:] = kept
        return removed

    def clear(self) -> None:
        for name in GROUP_ORDER:
            self._groups[name].clear()

    def elements(self, group: str, class_name: str | None = None) -> tuple[SurfaceElement, ...]:
        elements = self._group(group)
        if class_name is None:
            return tuple(elements)
        return tuple(element for element in elements if element.has_class(class_name))

    def iter_elements(self) -> Iterable[tuple[str, SurfaceElement]]:
        for name in GROUP_ORDER:
            for element in self._groups[name]:
                yield (name, element)

    def redraw(self, projection: Projection) -> None:
        """Recompute geometry of every element; translations are left untouched."""
        for _, element in self.iter_elements():
            element.redraw(projection)

    def find(self, name: str, group: str = MAP_GROUP) -> SurfaceElement | None:
        for element in self._group(group):
            if element.feature is not None and element.feature.display_name == name:
                return element
        return None

    def click(self, element: SurfaceElement) -> Any:
        if element.on_click is None or element.feature is None:
            return None
        return element.on_click(element.feature)

    def to_svg(self) -> str:
        lines = [
            "<svg xmlns='http://www.w3.org/2000/svg' "
            f"width='{self.width}' height='{self.height}' viewBox='0 0 {self.width} {self.height}'>"
        ]
        for name in GROUP_ORDER:
            style = " style='pointer-events: none'" if name == HIGHLIGHT_GROUP else ""
            lines.append(f"  <g class='{name}'{style}>")
            for element in self._groups[name]:
                lines.append("    " + _element_markup(element))
            lines.append("  </g>")
        lines.append("</svg>")
        return "\n".join(lines) + "\n"

    def write_svg(self, path: Path) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_svg(), encoding="utf-8")
        return path

    def _group(self, name: str) -> list[SurfaceElement]:
        try:
            return self._groups[name]
        except KeyError:
            raise ValueError(f"Unknown surface group: {name}") from None


def _element_markup(element: SurfaceElement) -> str:
    classes = escape(" ".join(element.classes))
    title = ""
    if element.feature is not None:
        title = f"<title>{escape(element.feature.display_name)}</title>"
    if element.kind == "path":
        return (
            f"<path class='{classes}' d='{escape(element.d)}' "
            f"transform='{element.transform}'>{title}</path>"
        )
    x, y, w, h = element.rect
    return (
        f"<rect class='{classes}' x='{_fmt(x)}' y='{_fmt(y)}' width='{_fmt(w)}' height='{_fmt(h)}' "
        f"transform='{element.transform}' fill='none'/>"
    )
