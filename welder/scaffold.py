"""
Project scaffolding (``welder init``) and environment checks (``welder doctor``).
"""

import sys
import logging
import importlib.metadata
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional, Union

import toml

from .config import DEFAULT_CONFIG_NAME, PackConfig, PathsConfig, WelderConfig, slugify
from .errors import ConfigError, WelderError
from .publish import find_butler
from .utils.files import atomic_write_bytes


logger = logging.getLogger(__name__)


CONFIG_HEADER = """\
# welder project configuration
# Paths under [paths] other than `input` and `dist` are relative to `dist`.
# Add [profiles.<name>] tables to override any section for `--profile <name>`.

"""


@dataclass
class CheckResult:
    """One line of the doctor report."""
    name: str
    detail: str
    ok: bool


def scaffold_project(root: Union[str, Path], name: Optional[str] = None,
                     author: Optional[str] = None, brand: Optional[str] = None,
                     input_dir: str = "src", overwrite: bool = False) -> List[Path]:
    """
    Write a starter ``welder.toml`` and create the input and dist folders.

    Returns:
        Paths created or written

    Raises:
        ConfigError: If ``welder.toml`` exists and ``overwrite`` is False
    """
    root = Path(root)
    config_path = root / DEFAULT_CONFIG_NAME
    if config_path.exists() and not overwrite:
        raise ConfigError("configuration already exists; pass --yes to overwrite", path=config_path)

    pack_name = name or root.resolve().name or PackConfig.name
    pack = PackConfig(name=pack_name, slug=slugify(pack_name), author=author or "", brand=brand or "")
    config = WelderConfig(pack=pack, paths=replace(PathsConfig(), input=input_dir), root=root)

    created = []
    for directory in (config.input_dir, config.dist_dir):
        if not directory.exists():
            directory.mkdir(parents=True)
            created.append(directory)

    document = CONFIG_HEADER + toml.dumps(config.to_dict())
    atomic_write_bytes(config_path, document.encode("utf-8"))
    created.append(config_path)

    logger.info(f"Scaffolded project '{pack.name}' in {root}")
    return created


def _package_version(distribution: str) -> Optional[str]:
    try:
        return importlib.metadata.version(distribution)
    except importlib.metadata.PackageNotFoundError:
        return None


def run_checks(root: Union[str, Path], config_path: Optional[Union[str, Path]] = None,
               profile: str = "default", check_butler: bool = False) -> List[CheckResult]:
    """Check the interpreter, libraries, configuration and inputs."""
    checks = [CheckResult("Python", sys.version.split()[0], sys.version_info >= (3, 10))]

    for label, distribution in (("Pillow", "Pillow"), ("numpy", "numpy"),
                                ("Typer", "typer"), ("Rich", "rich"), ("toml", "toml")):
        version = _package_version(distribution)
        checks.append(CheckResult(label, version or "Not installed", version is not None))

    config = None
    try:
        config = WelderConfig.load(config_path, profile=profile, root=root)
        errors = config.validate()
        if errors:
            checks.append(CheckResult("Configuration", "; ".join(errors), False))
        else:
            checks.append(CheckResult("Configuration", f"valid (profile '{profile}')", True))
    except WelderError as e:
        checks.append(CheckResult("Configuration", str(e), False))

    if config is not None:
        input_dir = config.input_dir
        checks.append(CheckResult("Input directory", str(input_dir), input_dir.is_dir()))

    if check_butler:
        butler = find_butler()
        checks.append(CheckResult("butler", butler or "Not found on PATH", butler is not None))

    return checks
