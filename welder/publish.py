"""
Publishing to itch.io through the ``butler`` command-line uploader.
"""

import shutil
import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from .config import WelderConfig
from .errors import PublishError
from .packaging import PackageResult, archive_name, package


logger = logging.getLogger(__name__)


BUTLER = "butler"


@dataclass
class PublishResult:
    """Result of a publish run."""
    command: List[str]
    package: Optional[PackageResult] = None
    dry_run: bool = False
    output: str = ""


def find_butler() -> Optional[str]:
    """Path of the butler binary, or None when it is not on PATH."""
    return shutil.which(BUTLER)


def butler_command(archive: Path, target: str, channel: str, version: str,
                   executable: str = BUTLER) -> List[str]:
    """``butler push <archive> <user/game>:<channel> --userversion <version>``"""
    return [executable, "push", str(archive), f"{target}:{channel}", "--userversion", version]


def publish(config: WelderConfig, channel: Optional[str] = None,
            dry_run: bool = False, include_previews: bool = True) -> PublishResult:
    """
    Package the build outputs and push them with butler.

    Args:
        config: Project configuration
        channel: itch.io channel (defaults to ``publish.channel``)
        dry_run: Return the command without packaging or running it

    Raises:
        PublishError: If no target is configured, butler is missing, or the
            upload fails
    """
    target = config.publish.target
    if not target or "/" not in target:
        raise PublishError("publish.target must be set to an itch.io 'user/game'")

    channel = channel or config.publish.channel
    archive = config.package_dir / archive_name(config)

    if dry_run:
        command = butler_command(archive, target, channel, config.pack.semver)
        logger.info(f"Dry run: {' '.join(command)}")
        return PublishResult(command=command, dry_run=True)

    executable = find_butler()
    if executable is None:
        raise PublishError("butler not found on PATH; install it from https://itch.io/docs/butler/")

    packaged = package(config, include_previews=include_previews)
    command = butler_command(packaged.archive, target, channel, config.pack.semver, executable)
    logger.info(f"Running {' '.join(command)}")

    try:
        completed = subprocess.run(command, capture_output=True, text=True, check=True)
    except subprocess.CalledProcessError as e:
        raise PublishError(f"butler exited with status {e.returncode}: {e.stderr.strip()}",
                           path=packaged.archive) from e
    except OSError as e:
        raise PublishError(f"cannot run butler: {e}", path=packaged.archive) from e

    return PublishResult(command=command, package=packaged, output=completed.stdout)
