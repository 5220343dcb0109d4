"""CLI entrypoint for the drill-down map engine."""

from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Sequence

from .config import AppConfig, load_config
from .controller import DrillDownController
from .outlying import load_outlying_regions
from .snapshot import write_snapshot
from .sources import build_source
from .util import ensure_directories, safe_filename, setup_logging, write_json
from .validate import Validator, format_report_lines

LOGGER = logging.getLogger("drillmap.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="drillmap",
        description="Taiwan county/town/village drill-down map.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_common(p: argparse.ArgumentParser) -> None:
        p.add_argument("--config", default="config.yaml", help="Path to YAML config.")
        p.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    validate_p = subparsers.add_parser("validate", help="Validate config, registry and datasets.")
    add_common(validate_p)
    validate_p.add_argument(
        "--check-source",
        action="store_true",
        help="Also fetch the root counties from the configured feature source.",
    )

    render_p = subparsers.add_parser(
        "render",
        help="Drill down headlessly along clicked region names and write snapshots.",
    )
    add_common(render_p)
    render_p.add_argument(
        "--click",
        action="append",
        default=[],
        help="Display name of a region to click, in order. Can be repeated.",
    )
    render_p.add_argument(
        "--reset",
        action="store_true",
        help="Reset to the county map after the clicks and before writing snapshots.",
    )
    render_p.add_argument(
        "--name",
        default=None,
        help="Output file stem. Defaults to the last clicked region.",
    )
    render_p.add_argument(
        "--snapshot",
        "--png",
        dest="snapshot",
        action="store_true",
        help="Also write a snapshot in snapshot.format next to the SVG.",
    )

    return parser


def _load_and_setup(args: argparse.Namespace) -> AppConfig:
    cfg = load_config(args.config)
    setup_logging(cfg.paths.logs_dir / "drillmap.log", verbose=args.verbose)
    ensure_directories(cfg.paths.build_directories)
    return cfg


def _run_validate(cfg: AppConfig, *, check_source: bool) -> int:
    report = Validator(cfg).run(check_source=check_source)
    for line in format_report_lines(report):
        LOGGER.info(line)
    return 0 if report.ok else 1


async def _drive(cfg: AppConfig, *, clicks: Sequence[str], reset: bool) -> DrillDownController | None:
    controller = DrillDownController(
        cfg,
        build_source(cfg.source),
        registry=load_outlying_regions(cfg.paths.outlying_regions, cfg.map),
        on_region_selected=lambda name: LOGGER.info("Selected region: %s", name),
    )
    if not await controller.start():
        LOGGER.error("Could not load the county map.")
        return None
    for name in clicks:
        if not await controller.click(name):
            LOGGER.error("Stopping at level %s; %s is not on the map.", controller.level.value, name)
            break
        await controller.wait_idle()
    if reset:
        await controller.reset()
    return controller


def _run_render(
    cfg: AppConfig,
    *,
    clicks: Sequence[str],
    reset: bool,
    name: str | None,
    snapshot: bool,
) -> int:
    controller = asyncio.run(_drive(cfg, clicks=clicks, reset=reset))
    if controller is None:
        return 1

    stem = safe_filename(name or (clicks[-1] if clicks and not reset else "taiwan"))
    outputs: dict[str, str] = {}
    svg_path = write_snapshot(
        controller.surface,
        controller.projection,
        cfg.paths.output_dir / f"{stem}.svg",
        cfg.snapshot,
    )
    outputs["svg"] = str(svg_path)
    LOGGER.info("SVG written to %s", svg_path)
    fmt = cfg.snapshot.format
    if snapshot and fmt != "svg":
        snapshot_path = write_snapshot(
            controller.surface,
            controller.projection,
            cfg.paths.output_dir / f"{stem}.{fmt}",
            cfg.snapshot,
        )
        outputs[fmt] = str(snapshot_path)
        LOGGER.info("%s snapshot written to %s", fmt.upper(), snapshot_path)

    summary_path = cfg.paths.output_dir / f"{stem}.json"
    write_json(
        summary_path,
        {
            "clicks": list(clicks),
            "level": controller.level.value,
            "selected": controller.selection.name,
            "features": list(controller.collection.names()),
            "viewport": {
                "center": list(controller.projection.center),
                "scale": controller.projection.scale,
            },
            "outputs": outputs,
        },
    )
    LOGGER.info("Render summary written to %s", summary_path)
    return 0


def _dispatch(args: argparse.Namespace) -> int:
    cfg = _load_and_setup(args)
    command = str(args.command)
    if command == "validate":
        return _run_validate(cfg, check_source=bool(args.check_source))
    if command == "render":
        return _run_render(
            cfg,
            clicks=[str(item) for item in args.click],
            reset=bool(args.reset),
            name=args.name,
            snapshot=bool(args.snapshot),
        )
    raise ValueError(f"Unknown command: {command}")


def main(argv: Sequence[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return _dispatch(args)


if __name__ == "__main__":
    raise SystemExit(main())
