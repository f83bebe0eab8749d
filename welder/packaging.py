"""
Deterministic zip packaging of build outputs.

The archive is a pure serialization of the outputs the current configuration
declares. Entries are sorted, timestamps and permissions are fixed, and the
manifest carries no wall-clock data, so the same outputs always zip to the
same bytes.
"""

import io
import json
import hashlib
import logging
import zipfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

from .config import WelderConfig
from .errors import WriteError
from .pipeline import planned_exports, planned_previews
from .utils.files import atomic_write_bytes


logger = logging.getLogger(__name__)


ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)
ZIP_FILE_MODE = 0o100644
MANIFEST_NAME = "manifest.json"


@dataclass
class PackageResult:
    """Result of packaging."""
    archive: Path
    entries: List[str] = field(default_factory=list)
    sha256: str = ""


def archive_name(config: WelderConfig) -> str:
    return f"{config.pack.resolved_slug}-{config.pack.semver}.zip"


def collect_entries(config: WelderConfig, include_previews: bool = False) -> List[Tuple[str, Path]]:
    """
    ``(arcname, path)`` for every declared output to package, sorted by arcname.

    Only the files a build (and preview) of the current configuration
    declares are packaged; exports of removed sources and stray files under
    ``dist`` are left out.

    Raises:
        WriteError: If there are no exports or a declared export is missing
    """
    exports = planned_exports(config)
    if not exports.paths:
        raise WriteError("no exports to package; add sources and run `welder build`",
                         path=config.exports_dir, stage="package")

    missing = [path for path in exports.absolute() if not path.is_file()]
    if missing:
        raise WriteError(f"{len(missing)} declared exports are missing; run `welder build` first",
                         path=missing[0], stage="package")

    entries = [(f"exports/{relative}", exports.root / relative) for relative in exports.paths]

    if include_previews:
        previews = planned_previews(config)
        for relative in previews.paths:
            path = previews.root / relative
            if path.is_file():
                entries.append((f"previews/{relative}", path))
            else:
                logger.warning(f"Preview {path} not found; run `welder preview` first")

    return sorted(entries, key=lambda entry: entry[0])


def build_manifest(config: WelderConfig, files: Dict[str, bytes]) -> bytes:
    """Pack metadata plus a SHA-256 per packaged file."""
    manifest = {
        "name": config.pack.name,
        "slug": config.pack.resolved_slug,
        "author": config.pack.author,
        "brand": config.pack.brand,
        "license": config.pack.license,
        "version": config.pack.semver,
        "resolutions": sorted(set(config.build.resolutions)),
        "files": [
            {"path": arcname, "size": len(data), "sha256": hashlib.sha256(data).hexdigest()}
            for arcname, data in files.items()
        ],
    }
    return (json.dumps(manifest, indent=2, sort_keys=True) + "\n").encode("utf-8")


def _zip_info(arcname: str) -> zipfile.ZipInfo:
    info = zipfile.ZipInfo(arcname, date_time=ZIP_EPOCH)
    info.compress_type = zipfile.ZIP_DEFLATED
    info.external_attr = ZIP_FILE_MODE << 16
    info.create_system = 3  # unix, so external_attr is honoured everywhere
    return info


def package(config: WelderConfig, out: Optional[Union[str, Path]] = None,
            include_previews: bool = False) -> PackageResult:
    """
    Zip the exports (and optionally previews) with a manifest.

    Args:
        config: Project configuration
        out: Archive path (defaults to ``dist/package/<slug>-<semver>.zip``)
        include_previews: Also package ``dist/previews``

    Returns:
        PackageResult with the archive path, entry names and digest

    Raises:
        WriteError: If declared outputs are missing or the archive cannot be written
        OutputCollision: If two sources share an export path
    """
    archive = Path(out) if out else config.package_dir / archive_name(config)

    files: Dict[str, bytes] = {}
    for arcname, path in collect_entries(config, include_previews):
        try:
            files[arcname] = path.read_bytes()
        except OSError as e:
            raise WriteError(f"cannot read output file: {e}", path=path, stage="package") from e

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        zf.writestr(_zip_info(MANIFEST_NAME), build_manifest(config, files), compresslevel=9)
        for arcname, data in files.items():
            zf.writestr(_zip_info(arcname), data, compresslevel=9)

    data = buffer.getvalue()
    atomic_write_bytes(archive, data)

    digest = hashlib.sha256(data).hexdigest()
    logger.info(f"Packaged {len(files)} files into {archive} (sha256 {digest[:12]})")

    return PackageResult(archive=archive, entries=[MANIFEST_NAME, *files], sha256=digest)
