"""Typed configuration loader for `config.yaml`."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, cast

import yaml


def _mapping(value: Any, field_name: str) -> Mapping[str, Any]:
    if not isinstance(value, Mapping):
        raise ValueError(f"Expected mapping for '{field_name}'")
    return cast(Mapping[str, Any], value)


def _str(value: Any, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Expected non-empty string for '{field_name}'")
    return value.strip()


def _int(value: Any, field_name: str) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValueError(f"Expected integer for '{field_name}'")
    return value


def _float(value: Any, field_name: str) -> float:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    raise ValueError(f"Expected float for '{field_name}'")


def _positive(value: float, field_name: str) -> float:
    if value <= 0:
        raise ValueError(f"{field_name} must be > 0")
    return value


def _lon_lat(value: Any, field_name: str) -> tuple[float, float]:
    if not isinstance(value, list) or len(value) != 2:
        raise ValueError(f"Expected [lon, lat] pair for '{field_name}'")
    lon = _float(value[0], f"{field_name}[0]")
    lat = _float(value[1], f"{field_name}[1]")
    if not -180.0 <= lon <= 180.0 or not -85.0 <= lat <= 85.0:
        raise ValueError(f"Out of range coordinate for '{field_name}': {value}")
    return (lon, lat)


def _path_from_cfg(value: Any, field_name: str, root_dir: Path) -> Path:
    raw = _str(value, field_name)
    p = Path(raw)
    return p if p.is_absolute() else root_dir / p


@dataclass(frozen=True, slots=True)
class MapConfig:
    width: int
    height: int
    initial_center: tuple[float, float]
    initial_scale: float
    county_zoom_scale: float
    town_zoom_scale: float

    @property
    def canvas_center(self) -> tuple[float, float]:
        return (self.width / 2, self.height / 2)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> MapConfig:
        width = _int(raw.get("width"), "map.width")
        height = _int(raw.get("height"), "map.height")
        if width <= 0 or height <= 0:
            raise ValueError("map.width and map.height must be > 0")
        return cls(
            width=width,
            height=height,
            initial_center=_lon_lat(raw.get("initial_center"), "map.initial_center"),
            initial_scale=_positive(_float(raw.get("initial_scale"), "map.initial_scale"), "map.initial_scale"),
            county_zoom_scale=_positive(
                _float(raw.get("county_zoom_scale"), "map.county_zoom_scale"), "map.county_zoom_scale"
            ),
            town_zoom_scale=_positive(
                _float(raw.get("town_zoom_scale"), "map.town_zoom_scale"), "map.town_zoom_scale"
            ),
        )

    @classmethod
    def default(cls) -> MapConfig:
        return cls(
            width=800,
            height=860,
            initial_center=(120.0, 24.0),
            initial_scale=10000.0,
            county_zoom_scale=20000.0,
            town_zoom_scale=100000.0,
        )


@dataclass(frozen=True, slots=True)
class AnimationConfig:
    duration_ms: float
    frame_interval_ms: float

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> AnimationConfig:
        return cls(
            duration_ms=_positive(
                _float(raw.get("duration_ms", 800), "animation.duration_ms"),
                "animation.duration_ms",
            ),
            frame_interval_ms=_positive(
                _float(raw.get("frame_interval_ms", 16), "animation.frame_interval_ms"),
                "animation.frame_interval_ms",
            ),
        )

    @classmethod
    def default(cls) -> AnimationConfig:
        return cls(duration_ms=800.0, frame_interval_ms=16.0)


@dataclass(frozen=True, slots=True)
class DatasetFilesConfig:
    county: Path
    town: Path
    village: Path

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> DatasetFilesConfig:
        return cls(
            county=_path_from_cfg(raw.get("county"), "source.files.county", root_dir),
            town=_path_from_cfg(raw.get("town"), "source.files.town", root_dir),
            village=_path_from_cfg(raw.get("village"), "source.files.village", root_dir),
        )


@dataclass(frozen=True, slots=True)
class SourceConfig:
    mode: str
    base_url: str
    county_path: str
    town_path: str
    village_path: str
    request_timeout_s: float
    user_agent: str
    files: DatasetFilesConfig | None = None

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> SourceConfig:
        mode = _str(raw.get("mode", "http"), "source.mode").casefold()
        allowed = {"http", "file"}
        if mode not in allowed:
            raise ValueError("source.mode must be one of: " + ", ".join(sorted(allowed)))

        town_path = _str(raw.get("town_path", "/api/taiwan-town/{name}"), "source.town_path")
        village_path = _str(raw.get("village_path", "/api/taiwan-village/{name}"), "source.village_path")
        for field_name, template in (("source.town_path", town_path), ("source.village_path", village_path)):
            if "{name}" not in template:
                raise ValueError(f"{field_name} must contain a '{{name}}' placeholder")

        files_raw = raw.get("files")
        files = (
            None
            if files_raw is None
            else DatasetFilesConfig.from_mapping(_mapping(files_raw, "source.files"), root_dir)
        )
        if mode == "file" and files is None:
            raise ValueError("source.files is required when source.mode is 'file'")

        return cls(
            mode=mode,
            base_url=_str(raw.get("base_url", "http://localhost:3000"), "source.base_url").rstrip("/"),
            county_path=_str(raw.get("county_path", "/api/taiwan-county"), "source.county_path"),
            town_path=town_path,
            village_path=village_path,
            request_timeout_s=_positive(
                _float(raw.get("request_timeout_s", 10), "source.request_timeout_s"),
                "source.request_timeout_s",
            ),
            user_agent=_str(raw.get("user_agent", "drillmap/0.1"), "source.user_agent"),
            files=files,
        )


@dataclass(frozen=True, slots=True)
class PathsConfig:
    outlying_regions: Path
    output_dir: Path
    logs_dir: Path

    @property
    def build_directories(self) -> tuple[Path, ...]:
        return (self.output_dir, self.logs_dir)

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], root_dir: Path) -> PathsConfig:
        return cls(
            outlying_regions=_path_from_cfg(
                raw.get("outlying_regions"), "paths.outlying_regions", root_dir
            ),
            output_dir=_path_from_cfg(raw.get("output_dir"), "paths.output_dir", root_dir),
            logs_dir=_path_from_cfg(raw.get("logs_dir"), "paths.logs_dir", root_dir),
        )


@dataclass(frozen=True, slots=True)
class SnapshotConfig:
    dpi: int
    format: str
    background: str
    fill_color: str
    outline_color: str
    outline_width: float
    highlight_color: str
    box_color: str

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> SnapshotConfig:
        fmt = _str(raw.get("format", "png"), "snapshot.format").casefold()
        if fmt not in {"png", "svg"}:
            raise ValueError("snapshot.format must be 'png' or 'svg'")
        return cls(
            dpi=_int(raw.get("dpi", 100), "snapshot.dpi"),
            format=fmt,
            background=_str(raw.get("background", "white"), "snapshot.background"),
            fill_color=_str(raw.get("fill_color", "#cfe3c8"), "snapshot.fill_color"),
            outline_color=_str(raw.get("outline_color", "#4a4a4a"), "snapshot.outline_color"),
            outline_width=_float(raw.get("outline_width", 0.6), "snapshot.outline_width"),
            highlight_color=_str(raw.get("highlight_color", "#e4572e"), "snapshot.highlight_color"),
            box_color=_str(raw.get("box_color", "#777777"), "snapshot.box_color"),
        )

    @classmethod
    def default(cls) -> SnapshotConfig:
        return cls.from_mapping({})


@dataclass(frozen=True, slots=True)
class AppConfig:
    source_path: Path | None
    map: MapConfig
    animation: AnimationConfig
    source: SourceConfig
    paths: PathsConfig
    snapshot: SnapshotConfig

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any], source_path: Path) -> AppConfig:
        root_dir = source_path.parent.resolve()
        animation_raw = raw.get("animation")
        snapshot_raw = raw.get("snapshot")
        return cls(
            source_path=source_path.resolve(),
            map=MapConfig.from_mapping(_mapping(raw.get("map"), "map")),
            animation=(
                AnimationConfig.default()
                if animation_raw is None
                else AnimationConfig.from_mapping(_mapping(animation_raw, "animation"))
            ),
            source=SourceConfig.from_mapping(_mapping(raw.get("source", {}), "source"), root_dir),
            paths=PathsConfig.from_mapping(_mapping(raw.get("paths"), "paths"), root_dir),
            snapshot=(
                SnapshotConfig.default()
                if snapshot_raw is None
                else SnapshotConfig.from_mapping(_mapping(snapshot_raw, "snapshot"))
            ),
        )

    @classmethod
    def default(cls, root_dir: Path | None = None) -> AppConfig:
        """Canonical settings for the Taiwan map without reading a file."""
        root = (root_dir or Path.cwd()).resolve()
        return cls(
            source_path=None,
            map=MapConfig.default(),
            animation=AnimationConfig.default(),
            source=SourceConfig.from_mapping({}, root),
            paths=PathsConfig(
                outlying_regions=root / "data" / "outlying_regions.yaml",
                output_dir=root / "build",
                logs_dir=root / "build" / "logs",
            ),
            snapshot=SnapshotConfig.default(),
        )


def load_config(path: str | Path) -> AppConfig:
    """Load and validate the YAML config file into typed settings."""
    cfg_path = Path(path).resolve()
    if not cfg_path.exists():
        raise FileNotFoundError(f"Config file not found: {cfg_path}")
    with cfg_path.open("r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh)
    if not isinstance(raw, Mapping):
        raise ValueError("Top-level config must be a YAML mapping")
    return AppConfig.from_mapping(cast(Mapping[str, Any], raw), cfg_path)
