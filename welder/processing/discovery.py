"""
Source discovery: enumerate input images by glob rules and decode them.

Discovery order never depends on filesystem traversal order; every result
is sorted by its POSIX relative path (case-sensitive, ascending).
"""

import os
import re
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import List, Sequence, Tuple, Union
from PIL import Image

from ..errors import DiscoveryError
from ..utils.image import ImageUtils


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SourceAsset:
    """A decoded source image, identified by its relative path."""
    identity: str
    image: Image.Image
    fingerprint: str

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.image.size


@lru_cache(maxsize=256)
def glob_to_regex(pattern: str) -> "re.Pattern[str]":
    """
    Translate a glob pattern into an anchored regex over POSIX paths.

    ``*`` and ``?`` never cross a ``/``; ``**`` matches any number of path
    segments, including none, and ``[...]`` is a character class.
    """
    i, n = 0, len(pattern)
    out = []
    while i < n:
        c = pattern[i]
        if c == '*':
            if pattern[i:i + 2] == '**':
                i += 2
                if pattern[i:i + 1] == '/':
                    i += 1
                    out.append('(?:.*/)?')
                else:
                    out.append('.*')
                continue
            out.append('[^/]*')
        elif c == '?':
            out.append('[^/]')
        elif c == '[':
            j = pattern.find(']', i + 2 if pattern[i + 1:i + 2] in ('!', '^') else i + 1)
            if j == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1:j]
                if body[:1] in ('!', '^'):
                    body = '^' + body[1:]
                out.append('[' + body.replace('\\', '\\\\') + ']')
                i = j
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile(''.join(out) + r'\Z')


def matches_any(path: str, patterns: Sequence[str]) -> bool:
    return any(glob_to_regex(pattern).match(path) for pattern in patterns)


class AssetDiscoverer:
    """Finds source images under an input root."""

    def __init__(self, include: Sequence[str], exclude: Sequence[str] = ()):
        self.include = list(include)
        self.exclude = list(exclude)

    def discover(self, root: Union[str, Path]) -> List[str]:
        """
        Return relative paths of all files under ``root`` matching an
        include pattern and no exclude pattern.

        Raises:
            DiscoveryError: If ``root`` is missing, not a directory or unreadable
        """
        root = Path(root)
        if not root.exists():
            raise DiscoveryError("input directory does not exist", path=root)
        if not root.is_dir():
            raise DiscoveryError("input path is not a directory", path=root)
        if not os.access(root, os.R_OK | os.X_OK):
            raise DiscoveryError("input directory is not readable", path=root)

        def on_error(error: OSError) -> None:
            raise DiscoveryError(f"cannot read directory: {error.strerror}",
                                 path=error.filename or root)

        found = []
        for dirpath, _dirnames, filenames in os.walk(root, onerror=on_error):
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            for filename in filenames:
                rel = filename if rel_dir == '.' else f"{rel_dir}/{filename}"
                if not matches_any(rel, self.include):
                    continue
                if matches_any(rel, self.exclude):
                    logger.debug(f"Excluded {rel}")
                    continue
                found.append(rel)

        found.sort()
        logger.info(f"Discovered {len(found)} source images in {root}")
        return found

    @staticmethod
    def load_asset(root: Union[str, Path], identity: str) -> SourceAsset:
        """
        Decode one discovered file into a SourceAsset.

        Raises:
            DecodeError: If the file is not a supported PNG
        """
        image = ImageUtils.load_image(Path(root) / identity, name=identity)
        return SourceAsset(identity=identity, image=image,
                           fingerprint=ImageUtils.fingerprint(image))


def discover_assets(root: Union[str, Path], include: Sequence[str],
                    exclude: Sequence[str] = ()) -> List[str]:
    """Convenience wrapper around ``AssetDiscoverer.discover``."""
    return AssetDiscoverer(include, exclude).discover(root)
