"""Raster and vector snapshots of the drawing surface."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Sequence

from .config import SnapshotConfig
from .projection import Projection
from .surface import BOXES_GROUP, HIGHLIGHT_GROUP, DrawingSurface, SurfaceElement

_LOGGER = logging.getLogger("drillmap.snapshot")


def write_snapshot(
    surface: DrawingSurface,
    projection: Projection,
    output_path: Path,
    cfg: SnapshotConfig,
) -> Path:
    """Write the surface as SVG or as a matplotlib raster, chosen by the file suffix."""
    suffix = output_path.suffix.casefold().lstrip(".") or cfg.format
    if suffix == "svg":
        return surface.write_svg(output_path)
    return _write_raster(surface, projection, output_path, cfg, fmt=suffix)


def _write_raster(
    surface: DrawingSurface,
    projection: Projection,
    output_path: Path,
    cfg: SnapshotConfig,
    *,
    fmt: str,
) -> Path:
    plt = _require_matplotlib()
    dpi = cfg.dpi
    fig, ax = plt.subplots(figsize=(surface.width / dpi, surface.height / dpi), dpi=dpi)
    fig.subplots_adjust(left=0.0, right=1.0, bottom=0.0, top=1.0)
    try:
        fig.patch.set_facecolor(cfg.background)
        ax.set_facecolor(cfg.background)
        ax.set_xlim(0, surface.width)
        ax.set_ylim(surface.height, 0)
        ax.set_axis_off()

        drawn = 0
        for group, element in surface.iter_elements():
            if group == BOXES_GROUP:
                _draw_box(ax, element, cfg)
            elif group == HIGHLIGHT_GROUP:
                _draw_polygons(
                    ax,
                    _translated_polygons(element, projection),
                    fill=None,
                    edge=cfg.highlight_color,
                    width=2.0,
                    zorder=3,
                )
            else:
                _draw_polygons(
                    ax,
                    _translated_polygons(element, projection),
                    fill=cfg.fill_color,
                    edge=cfg.outline_color,
                    width=cfg.outline_width,
                    zorder=1,
                )
            drawn += 1

        output_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(output_path, dpi=dpi, format=fmt, facecolor=fig.get_facecolor())
        _LOGGER.info("Snapshot with %d elements written to %s", drawn, output_path)
        return output_path
    finally:
        plt.close(fig)


def _translated_polygons(
    element: SurfaceElement,
    projection: Projection,
) -> list[list[list[tuple[float, float]]]]:
    """Projected rings grouped per polygon, exterior first, holes wound against it."""
    orient = _require_shapely_orient()
    dx, dy = element.translate
    polygons: list[list[list[tuple[float, float]]]] = []
    for polygon in _iter_polygons(element.geometry):
        rings = projection.rings(orient(polygon, sign=1.0))
        polygons.append([[(x + dx, y + dy) for x, y in ring] for ring in rings])
    return polygons


def _iter_polygons(geometry: Any) -> list[Any]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        return [geometry]
    if geom_type in {"MultiPolygon", "GeometryCollection"}:
        polygons: list[Any] = []
        for part in geometry.geoms:
            polygons.extend(_iter_polygons(part))
        return polygons
    return []


def _draw_polygons(
    ax: Any,
    polygons: Sequence[Sequence[Sequence[tuple[float, float]]]],
    *,
    fill: str | None,
    edge: str,
    width: float,
    zorder: int,
) -> None:
    mpl_path, path_patch = _require_matplotlib_paths()
    for polygon in polygons:
        rings = [ring for ring in polygon if len(ring) >= 3]
        if not rings:
            continue
        if fill is not None:
            # Exterior and holes share one path; holes are wound opposite.
            compound = mpl_path.make_compound_path(*(mpl_path(ring, closed=True) for ring in rings))
            ax.add_patch(path_patch(compound, facecolor=fill, edgecolor="none", linewidth=0, zorder=zorder))
        for ring in rings:
            ax.plot(
                [point[0] for point in ring],
                [point[1] for point in ring],
                color=edge,
                linewidth=width,
                zorder=zorder + 1,
                solid_joinstyle="round",
                solid_capstyle="round",
            )


def _draw_box(ax: Any, element: SurfaceElement, cfg: SnapshotConfig) -> None:
    x, y, w, h = element.rect
    dx, dy = element.translate
    x0, y0 = x + dx, y + dy
    ax.plot(
        [x0, x0 + w, x0 + w, x0, x0],
        [y0, y0, y0 + h, y0 + h, y0],
        color=cfg.box_color,
        linewidth=0.8,
        linestyle=(0, (1.8, 2.8)),
        zorder=0,
    )


def _require_matplotlib() -> Any:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for raster snapshots") from exc
    return plt


def _require_matplotlib_paths() -> tuple[Any, Any]:
    try:
        from matplotlib.patches import PathPatch
        from matplotlib.path import Path as MplPath
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for raster snapshots") from exc
    return MplPath, PathPatch


def _require_shapely_orient() -> Any:
    try:
        from shapely.geometry.polygon import orient
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("shapely is required for raster snapshots") from exc
    return orient
