"""
Configuration management for welder.
Supports TOML and JSON configuration files, named profiles and
environment variable overrides, with validation.
"""

import os
import re
import json
import copy
from dataclasses import dataclass, field, asdict, replace

# Handle tomllib import for different Python versions
try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python < 3.11 with tomli package
from typing import Dict, List, Optional, Any, Union
from pathlib import Path

from .errors import ConfigError


DEFAULT_CONFIG_NAME = "welder.toml"
DEFAULT_PROFILE = "default"

VALID_STYLES = ("sheet", "grid")
VALID_POSITIONS = ("tl", "tr", "bl", "br", "center")
VALID_SORT_KEYS = ("name", "width", "height", "area")
VALID_FILTERS = ("nearest",)


def slugify(name: str) -> str:
    """Turn a pack name into a filesystem and URL friendly slug."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug or "pack"


@dataclass(frozen=True)
class PackConfig:
    """Pack identity used for package naming and the manifest."""
    name: str = "Untitled Pack"
    slug: str = ""
    author: str = ""
    brand: str = ""
    license: str = "CC0-1.0"
    semver: str = "0.1.0"

    @property
    def resolved_slug(self) -> str:
        return self.slug or slugify(self.name)


@dataclass(frozen=True)
class PathsConfig:
    """Project paths. ``input`` and ``dist`` are relative to the project
    root; the remaining entries are relative to ``dist``."""
    input: str = "src"
    dist: str = "dist"
    previews: str = "previews"
    exports: str = "exports"
    sheets: str = "sheets"
    package: str = "package"


@dataclass(frozen=True)
class InputsConfig:
    include: List[str] = field(default_factory=lambda: ["**/*.png"])
    exclude: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class BuildConfig:
    resolutions: List[int] = field(default_factory=lambda: [1, 2, 4])
    filter: str = "nearest"
    trim_transparent: bool = False
    workers: int = 0  # 0 = pick from cpu count


@dataclass(frozen=True)
class WatermarkConfig:
    enabled: bool = False
    text: str = ""
    opacity: float = 0.35
    position: str = "br"
    margin_px: int = 8


@dataclass(frozen=True)
class PreviewConfig:
    styles: List[str] = field(default_factory=lambda: ["sheet", "grid"])
    background: str = "#00000000"
    scale: int = 1
    thumbnail: bool = False
    thumbnail_px: int = 256
    watermark: WatermarkConfig = field(default_factory=WatermarkConfig)


@dataclass(frozen=True)
class SheetConfig:
    max_width: int = 2048
    max_height: int = 2048
    padding_px: int = 2
    sort: str = "name"


@dataclass(frozen=True)
class GridConfig:
    cell_px: int = 64
    padding_px: int = 8
    columns: int = 8


@dataclass(frozen=True)
class PublishConfig:
    target: str = ""  # itch.io "user/game"
    channel: str = "assets"


SECTIONS = {
    "pack": PackConfig,
    "paths": PathsConfig,
    "inputs": InputsConfig,
    "build": BuildConfig,
    "preview": PreviewConfig,
    "sheet": SheetConfig,
    "grid": GridConfig,
    "publish": PublishConfig,
}


@dataclass(frozen=True)
class WelderConfig:
    """Main configuration object for a welder project."""

    pack: PackConfig = field(default_factory=PackConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)
    inputs: InputsConfig = field(default_factory=InputsConfig)
    build: BuildConfig = field(default_factory=BuildConfig)
    preview: PreviewConfig = field(default_factory=PreviewConfig)
    sheet: SheetConfig = field(default_factory=SheetConfig)
    grid: GridConfig = field(default_factory=GridConfig)
    publish: PublishConfig = field(default_factory=PublishConfig)

    # Directory the relative paths are resolved against
    root: Path = Path(".")
    profile: str = DEFAULT_PROFILE

    @classmethod
    def from_file(cls, config_path: Union[str, Path],
                  profile: str = DEFAULT_PROFILE) -> "WelderConfig":
        """Load configuration from TOML or JSON file."""
        config_path = Path(config_path)

        if not config_path.exists():
            raise ConfigError("configuration file not found", path=config_path)

        suffix = config_path.suffix.lower()
        try:
            if suffix == '.toml':
                with open(config_path, 'rb') as f:
                    data = tomllib.load(f)
            elif suffix == '.json':
                with open(config_path, 'r', encoding='utf-8') as f:
                    data = json.load(f)
            else:
                raise ConfigError(f"unsupported configuration format: {config_path.suffix}",
                                  path=config_path)
        except (tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
            raise ConfigError(f"cannot parse configuration: {e}", path=config_path) from e
        except OSError as e:
            raise ConfigError(f"cannot read configuration: {e}", path=config_path) from e

        return cls.from_dict(data, profile=profile, root=config_path.parent)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], profile: str = DEFAULT_PROFILE,
                  root: Union[str, Path] = ".") -> "WelderConfig":
        """Create configuration from a dictionary, applying ``profile``."""
        data = copy.deepcopy(data)
        profiles = data.pop("profiles", {}) or {}

        if profile in profiles:
            data = _deep_merge(data, profiles[profile])
        elif profile != DEFAULT_PROFILE:
            known = ", ".join(sorted(profiles)) or "none"
            raise ConfigError(f"unknown profile '{profile}' (known: {known})")

        unknown = sorted(set(data) - set(SECTIONS))
        if unknown:
            raise ConfigError(f"unknown configuration sections: {', '.join(unknown)}")

        sections: Dict[str, Any] = {}
        for name, section_cls in SECTIONS.items():
            sections[name] = _build_section(name, section_cls, data.get(name, {}))

        return cls(root=Path(root), profile=profile, **sections)

    @classmethod
    def default(cls, root: Union[str, Path] = ".") -> "WelderConfig":
        """Create default configuration with environment variable overrides."""
        return cls(root=Path(root)).with_env_overrides()

    @classmethod
    def load(cls, config_path: Optional[Union[str, Path]] = None,
             profile: str = DEFAULT_PROFILE,
             root: Union[str, Path] = ".") -> "WelderConfig":
        """Load ``config_path`` (or ``<root>/welder.toml`` if present),
        then apply environment overrides."""
        root = Path(root)
        if config_path is None:
            candidate = root / DEFAULT_CONFIG_NAME
            if not candidate.exists():
                if profile != DEFAULT_PROFILE:
                    raise ConfigError(f"profile '{profile}' requested but no configuration file found",
                                      path=candidate)
                return cls.default(root)
            config_path = candidate
        else:
            config_path = Path(config_path)
            if not config_path.is_absolute():
                config_path = root / config_path

        return cls.from_file(config_path, profile=profile).with_env_overrides()

    def with_env_overrides(self) -> "WelderConfig":
        """Apply environment variable overrides to configuration."""
        config = self

        if os.getenv('WELDER_INPUT'):
            config = replace(config, paths=replace(config.paths, input=os.environ['WELDER_INPUT']))

        if os.getenv('WELDER_DIST'):
            config = replace(config, paths=replace(config.paths, dist=os.environ['WELDER_DIST']))

        if os.getenv('WELDER_RESOLUTIONS'):
            config = config.with_resolutions(parse_resolutions(os.environ['WELDER_RESOLUTIONS']))

        if os.getenv('WELDER_WORKERS'):
            config = replace(config, build=replace(config.build, workers=int(os.environ['WELDER_WORKERS'])))

        if os.getenv('WELDER_WATERMARK'):
            enabled = os.environ['WELDER_WATERMARK'].lower() in ('1', 'true', 'yes', 'on')
            watermark = replace(config.preview.watermark, enabled=enabled)
            config = replace(config, preview=replace(config.preview, watermark=watermark))

        return config

    def with_resolutions(self, resolutions: List[int]) -> "WelderConfig":
        return replace(self, build=replace(self.build, resolutions=list(resolutions)))

    # Resolved directories

    @property
    def input_dir(self) -> Path:
        return self.root / self.paths.input

    @property
    def dist_dir(self) -> Path:
        return self.root / self.paths.dist

    @property
    def exports_dir(self) -> Path:
        return self.dist_dir / self.paths.exports

    @property
    def previews_dir(self) -> Path:
        return self.dist_dir / self.paths.previews

    @property
    def package_dir(self) -> Path:
        return self.dist_dir / self.paths.package

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view of the configuration sections."""
        return {name: asdict(getattr(self, name)) for name in SECTIONS}

    def validate(self) -> List[str]:
        """Validate configuration and return list of errors."""
        errors = []

        if not self.pack.name:
            errors.append("pack.name must not be empty")

        if not re.fullmatch(r"\d+\.\d+\.\d+([-+][0-9A-Za-z.-]+)?", self.pack.semver):
            errors.append(f"pack.semver '{self.pack.semver}' is not a semantic version")

        for key in ("input", "dist", "previews", "exports", "sheets", "package"):
            value = getattr(self.paths, key)
            if not value or Path(value).is_absolute():
                errors.append(f"paths.{key} must be a non-empty relative path")

        if not self.inputs.include:
            errors.append("inputs.include must contain at least one pattern")

        # Build settings
        if not self.build.resolutions:
            errors.append("build.resolutions must not be empty")
        for res in self.build.resolutions:
            if isinstance(res, bool) or not isinstance(res, int) or res <= 0:
                errors.append(f"build.resolutions entries must be positive integers, got {res!r}")
        if self.build.filter not in VALID_FILTERS:
            errors.append(f"build.filter must be one of {', '.join(VALID_FILTERS)}")
        if self.build.workers < 0:
            errors.append("build.workers must be zero (auto) or positive")

        # Preview settings
        if not self.preview.styles:
            errors.append("preview.styles must not be empty")
        for style in self.preview.styles:
            if style not in VALID_STYLES:
                errors.append(f"preview.styles entries must be one of {', '.join(VALID_STYLES)}, got '{style}'")
        if self.preview.scale <= 0:
            errors.append("preview.scale must be a positive integer")
        if self.preview.thumbnail_px <= 0:
            errors.append("preview.thumbnail_px must be positive")

        watermark = self.preview.watermark
        if not 0 <= watermark.opacity <= 1:
            errors.append("preview.watermark.opacity must be between 0 and 1")
        if watermark.position not in VALID_POSITIONS:
            errors.append(f"preview.watermark.position must be one of {', '.join(VALID_POSITIONS)}")
        if watermark.margin_px < 0:
            errors.append("preview.watermark.margin_px must not be negative")
        if watermark.enabled and not watermark.text:
            errors.append("preview.watermark.text must be set when the watermark is enabled")

        # Layout settings
        if self.sheet.max_width <= 0 or self.sheet.max_height <= 0:
            errors.append("sheet.max_width and sheet.max_height must be positive")
        if self.sheet.padding_px < 0:
            errors.append("sheet.padding_px must not be negative")
        if self.sheet.sort not in VALID_SORT_KEYS:
            errors.append(f"sheet.sort must be one of {', '.join(VALID_SORT_KEYS)}")

        if self.grid.cell_px <= 0:
            errors.append("grid.cell_px must be positive")
        if self.grid.padding_px < 0:
            errors.append("grid.padding_px must not be negative")
        if self.grid.columns <= 0:
            errors.append("grid.columns must be positive")

        return errors


def parse_resolutions(value: str) -> List[int]:
    """Parse a comma separated resolution list such as ``"1,2,4"``."""
    try:
        resolutions = [int(part.strip().rstrip("xX")) for part in value.split(",") if part.strip()]
    except ValueError:
        raise ConfigError(f"invalid resolution list '{value}'")
    if not resolutions or any(res <= 0 for res in resolutions):
        raise ConfigError(f"resolutions must be positive integers, got '{value}'")
    return resolutions


def _build_section(name: str, section_cls: type, values: Dict[str, Any]) -> Any:
    """Instantiate one section dataclass, rejecting unknown keys."""
    if not isinstance(values, dict):
        raise ConfigError(f"section [{name}] must be a table")

    values = dict(values)
    allowed = set(section_cls.__dataclass_fields__)
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ConfigError(f"unknown keys in [{name}]: {', '.join(unknown)}")

    if section_cls is PreviewConfig and "watermark" in values:
        values["watermark"] = _build_section("preview.watermark", WatermarkConfig, values["watermark"])

    return section_cls(**values)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged
