# -*- Mode:Python; indent-tabs-mode:nil; tab-width:4 -*-
#
# Copyright 2024 Canonical Ltd.
#
# This program is free software; you can redistribute it and/or
# modify it under the terms of the GNU Lesser General Public
# License version 3 as published by the Free Software Foundation.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the GNU
# Lesser General Public License for more details.
#
# You should have received a copy of the GNU Lesser General Public License
# along with this program.  If not, see <http://www.gnu.org/licenses/>.

"""Size-limited disk cache of image filesystem layers.

Each image is stored in a gzip-compressed JSON file. The file access time
is the recency signal used to evict the least recently used images when
the cache grows beyond the size configured in the preferences.
"""

import contextlib
import gzip
import json
import logging
import os
import re
import zlib
from pathlib import Path
from typing import NamedTuple

import pydantic

from layers_explorer import errors
from layers_explorer.models import ImageLayers
from layers_explorer.preferences import Preferences
from layers_explorer.utils import os_utils

logger = logging.getLogger(__name__)

CACHE_NAMESPACE = "cache"
CACHE_VERSION = "v1"
CACHE_FILE_SUFFIX = ".gz"

_MIB = 1024 * 1024
_UNSAFE_FILENAME_CHARS = re.compile(r"[^A-Za-z0-9._-]")


class CacheFileInfo(NamedTuple):
    """A file in the cache directory."""

    name: str
    size: int


def cache_file_name(image_id: str) -> str:
    """Obtain the name of the cache file of an image.

    :param image_id: The image identity.

    :returns: The file name, with characters not allowed in file names
        replaced by underscores.
    """
    return _UNSAFE_FILENAME_CHARS.sub("_", image_id) + CACHE_FILE_SUFFIX


class LayersCache:
    """Cache image filesystem layers on disk.

    :param preferences: The preferences providing the maximum cache size.
    :param storage_path: The directory where the cache is created.
    """

    def __init__(self, preferences: Preferences, storage_path: Path) -> None:
        self._preferences = preferences
        self._storage_path = Path(storage_path)

    @property
    def root_dir(self) -> Path:
        """The directory containing the cache files."""
        return self._storage_path / CACHE_NAMESPACE / CACHE_VERSION

    def init(self) -> None:
        """Bring the cache within the configured size limit."""
        try:
            self.limit_size(0)
        except (errors.LayersError, OSError) as err:
            logger.warning("error clearing cache: %s", err)

    def get(self, image_id: str) -> ImageLayers | None:
        """Obtain the cached layers of an image.

        Reading a cache entry marks it as recently used.

        :param image_id: The image identity.

        :returns: The cached layers, or None if the image is not cached or
            the cache entry can't be used.
        """
        filepath = self._image_cache_file(image_id)
        try:
            layers = self._read(filepath)
        except FileNotFoundError:
            return None
        except errors.CacheReadError as err:
            logger.warning("error getting/reading cache for %s: %s", image_id, err)
            return None

        try:
            os.utime(filepath)
        except OSError as err:
            logger.warning(
                "unable to modify atime and mtime for %s cache file: %s",
                image_id,
                err,
            )

        logger.debug("cache hit for image %s", image_id)
        return layers

    def save(self, image_id: str, layers: ImageLayers) -> None:
        """Store the layers of an image in the cache.

        Older entries are evicted to make room for the new entry. Nothing is
        written if the entry alone exceeds the cache size limit.

        :param image_id: The image identity.
        :param layers: The layers to cache.

        :raises EvictionError: If older entries could not be removed.
        """
        compressed = gzip.compress(json.dumps(layers.marshal()).encode())
        max_size = self._max_size()
        if len(compressed) > max_size:
            logger.debug(
                "not caching %s: %d bytes exceed the cache size limit of %d bytes",
                image_id,
                len(compressed),
                max_size,
            )
            return

        self.limit_size(len(compressed))

        filepath = self._image_cache_file(image_id)
        try:
            self._write(filepath, compressed)
        except errors.CacheWriteError as err:
            logger.warning("error saving cache file for %s: %s", image_id, err)

    def limit_size(self, reserved: int) -> None:
        """Remove least recently used files to fit the cache size limit.

        Files are considered from the most recently accessed one, and a file
        is removed if adding its size to the sizes of the files kept so far
        exceeds the limit. Smaller files accessed less recently can still be
        kept after a larger file was removed.

        :param reserved: The space to keep available for a new file.

        :raises EvictionError: If a file could not be removed.
        """
        max_size = self._max_size()
        accumulated = reserved
        for file in self.get_sorted_files_by_atime(self.root_dir):
            if accumulated + file.size > max_size:
                logger.debug("evict cache file %s (%d bytes)", file.name, file.size)
                try:
                    self.delete_cache_file(file.name)
                except FileNotFoundError:
                    logger.debug("cache file %s already removed", file.name)
                except OSError as err:
                    raise errors.EvictionError(file.name, str(err)) from err
                continue

            accumulated += file.size

    def clear_image_cache(self, image_id: str) -> None:
        """Remove the cache entry of an image, if any.

        :param image_id: The image identity. A bare hexadecimal identifier
            is taken as a sha256 digest.
        """
        if ":" not in image_id:
            image_id = f"sha256:{image_id}"

        with contextlib.suppress(FileNotFoundError):
            self.delete_cache_file(cache_file_name(image_id))
            logger.debug("removed cache entry for image %s", image_id)

    def delete_cache_file(self, filename: str) -> None:
        """Remove a file from the cache directory.

        :param filename: The name of the file to remove.

        :raises OSError: If the file could not be removed.
        """
        (self.root_dir / filename).unlink()

    def get_sorted_files_by_atime(self, directory: Path) -> list[CacheFileInfo]:
        """List the cache files, the most recently accessed first.

        Every regular file in the directory is listed, including temporary
        files left behind by interrupted writes.

        :param directory: The cache directory.

        :returns: The names and sizes of the cache files.
        """
        files: list[tuple[int, CacheFileInfo]] = []
        try:
            with os.scandir(directory) as entries:
                for entry in entries:
                    try:
                        if not entry.is_file(follow_symlinks=False):
                            continue
                        stat = entry.stat(follow_symlinks=False)
                    except FileNotFoundError:
                        continue
                    files.append(
                        (stat.st_atime_ns, CacheFileInfo(entry.name, stat.st_size))
                    )
        except FileNotFoundError:
            return []
        except OSError as err:
            logger.warning("error getting files in layers cache: %s", err)
            return []

        files.sort(key=lambda item: item[0], reverse=True)
        return [info for _, info in files]

    def _max_size(self) -> int:
        return _MIB * self._preferences.get_cache_size()

    def _image_cache_file(self, image_id: str) -> Path:
        return self.root_dir / cache_file_name(image_id)

    @staticmethod
    def _read(filepath: Path) -> ImageLayers:
        """Read and decode a cache file.

        :raises FileNotFoundError: If the cache file doesn't exist.
        :raises CacheReadError: If the cache file can't be read or decoded.
        """
        try:
            compressed = filepath.read_bytes()
        except FileNotFoundError:
            raise
        except OSError as err:
            raise errors.CacheReadError(filepath.name, str(err)) from err

        try:
            data = json.loads(gzip.decompress(compressed))
            return ImageLayers.unmarshal(data)
        except (
            EOFError,
            OSError,
            zlib.error,
            UnicodeDecodeError,
            json.JSONDecodeError,
            TypeError,
            pydantic.ValidationError,
        ) as err:
            raise errors.CacheReadError(filepath.name, str(err)) from err

    @staticmethod
    def _write(filepath: Path, data: bytes) -> None:
        """Write a cache file, creating the cache directory if needed.

        :raises CacheWriteError: If the cache file can't be written.
        """
        try:
            filepath.parent.mkdir(parents=True, exist_ok=True)
            os_utils.TimedWriter.write_bytes(filepath, data)
        except OSError as err:
            raise errors.CacheWriteError(filepath.name, str(err)) from err
