"""Validation layer for config, outlying-region registry and feature datasets."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from .config import AppConfig
from .models import FeatureCollection
from .outlying import OutlyingRegionRegistry, load_outlying_regions
from .sources import FeatureSourceError, GeoFeatureSource, build_source


@dataclass(slots=True)
class ValidationReport:
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    infos: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)

    def add_info(self, msg: str) -> None:
        self.infos.append(msg)


class Validator:
    """Top-level config and input validator."""

    def __init__(self, cfg: AppConfig, source: GeoFeatureSource | None = None) -> None:
        self.cfg = cfg
        self._source = source

    def run(self, *, check_source: bool) -> ValidationReport:
        report = ValidationReport()
        self._validate_map(report)
        registry = self._validate_registry(report)
        self._validate_dataset_files(report)
        if check_source:
            self._validate_source(report, registry=registry)
        return report

    def _validate_map(self, report: ValidationReport) -> None:
        map_cfg = self.cfg.map
        if map_cfg.county_zoom_scale <= map_cfg.initial_scale:
            report.add_warning(
                f"County zoom scale {map_cfg.county_zoom_scale:g} does not zoom in "
                f"from the initial scale {map_cfg.initial_scale:g}"
            )
        if map_cfg.town_zoom_scale <= map_cfg.county_zoom_scale:
            report.add_warning(
                f"Town zoom scale {map_cfg.town_zoom_scale:g} does not zoom in "
                f"from the county zoom scale {map_cfg.county_zoom_scale:g}"
            )
        report.add_info(
            f"Canvas {map_cfg.width}x{map_cfg.height}, center {map_cfg.initial_center}, "
            f"scale {map_cfg.initial_scale:g}"
        )

    def _validate_registry(self, report: ValidationReport) -> OutlyingRegionRegistry | None:
        path = self.cfg.paths.outlying_regions
        if not path.exists():
            report.add_warning(f"Outlying regions file not found, using built-in registry: {path}")
        try:
            registry = load_outlying_regions(path, self.cfg.map)
        except Exception as exc:
            report.add_error(f"Failed parsing outlying regions '{path}': {exc}")
            return None
        report.add_info(f"Loaded {len(registry)} outlying regions")

        for name in registry.names():
            offset = registry.get(name)
            if offset is None:
                continue
            if not (0 <= offset.offset_x <= self.cfg.map.width and 0 <= offset.offset_y <= self.cfg.map.height):
                report.add_warning(
                    f"Offset for {name} ({offset.offset_x:g}, {offset.offset_y:g}) lies outside the canvas"
                )
        return registry

    def _validate_dataset_files(self, report: ValidationReport) -> None:
        files = self.cfg.source.files
        if files is None:
            return
        as_error = self.cfg.source.mode == "file"
        for path in (files.county, files.town, files.village):
            self._check_exists(report, path, as_error=as_error)

    def _validate_source(self, report: ValidationReport, *, registry: OutlyingRegionRegistry | None) -> None:
        source = self._source or build_source(self.cfg.source)
        try:
            counties = asyncio.run(source.fetch_counties())
        except FeatureSourceError as exc:
            report.add_error(f"Loading root counties failed: {exc}")
            return
        if not counties.features:
            report.add_error("Root county collection is empty")
            return
        report.add_info(f"Loaded {len(counties)} root county features")
        self._check_county_names(report, counties)
        if registry is not None:
            self._check_registry_names(report, counties, registry)

    @staticmethod
    def _check_county_names(report: ValidationReport, counties: FeatureCollection) -> None:
        missing = [idx for idx, feature in enumerate(counties) if feature.county_name is None]
        if missing:
            report.add_warning(
                f"{len(missing)} county features lack COUNTYNAME and cannot be drilled into"
            )

    @staticmethod
    def _check_registry_names(
        report: ValidationReport,
        counties: FeatureCollection,
        registry: OutlyingRegionRegistry,
    ) -> None:
        known = {feature.county_name or feature.display_name for feature in counties}
        for name in registry.names():
            if name not in known:
                report.add_warning(f"Outlying region {name} does not match any county feature")

    @staticmethod
    def _check_exists(report: ValidationReport, path: Path, *, as_error: bool) -> None:
        if path.exists():
            return
        msg = f"Missing dataset file: {path}"
        if as_error:
            report.add_error(msg)
        else:
            report.add_warning(msg)


def format_report_lines(report: ValidationReport) -> Iterable[str]:
    for info in report.infos:
        yield f"[INFO] {info}"
    for warning in report.warnings:
        yield f"[WARN] {warning}"
    for error in report.errors:
        yield f"[ERROR] {error}"
    if report.ok:
        yield "[OK] Validation completed with no errors."
