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

"""Obtain the filesystem layers of container images."""

import contextlib
import logging
import threading
from collections.abc import Callable, Iterator
from pathlib import Path

from layers_explorer import archive, errors, events
from layers_explorer.cache import LayersCache
from layers_explorer.engine import CancellationToken, ImageExporter, extract_archive
from layers_explorer.models import ImageInfo, ImageLayers
from layers_explorer.utils import os_utils

logger = logging.getLogger(__name__)

ArchiveExtractor = Callable[[Path, Path, CancellationToken | None], None]


class Explorer:
    """Resolve image filesystem layers, using the cache when possible.

    :param cache: The cache of previously resolved images.
    :param exporter: The container engine image exporter.
    :param extractor: The function used to extract the image archive.
    :param work_dir: Where temporary directories are created, the system
        default temporary location if not specified.
    """

    def __init__(
        self,
        cache: LayersCache,
        exporter: ImageExporter,
        *,
        extractor: ArchiveExtractor = extract_archive,
        work_dir: Path | None = None,
    ) -> None:
        self._cache = cache
        self._exporter = exporter
        self._extractor = extractor
        self._work_dir = work_dir
        self._image_locks: dict[str, _ImageLock] = {}
        self._image_locks_guard = threading.Lock()

    def get_filesystem_layers(
        self, image: ImageInfo, token: CancellationToken | None = None
    ) -> ImageLayers:
        """Obtain the filesystem layers of an image.

        :param image: The image to inspect.
        :param token: The cancellation token for this request.

        :returns: The image layers, base layer first.

        :raises OperationCancelled: If the request was cancelled.
        :raises LayersExtractionError: If the layers could not be obtained.
        """
        with self._image_lock(image.id):
            cached = self._cache.get(image.id)
            if cached is not None:
                return cached

            try:
                with os_utils.temporary_directory(base_dir=self._work_dir) as tmpdir:
                    result = self._extract_layers(image, tmpdir, token)
            except errors.OperationCancelled as err:
                logger.debug("request for image %s cancelled: %s", image.id, err)
                raise
            except (errors.LayersError, OSError) as err:
                raise errors.LayersExtractionError(image.id, str(err)) from err

            try:
                self._cache.save(image.id, result)
            except (errors.LayersError, OSError) as err:
                logger.warning("unable to cache layers of %s: %s", image.id, err)

            return result

    def handle_image_event(self, event: events.ImageEvent) -> None:
        """Drop the cache entry of images removed from the container engine.

        :param event: The container engine image event.
        """
        if not event.is_removal:
            return

        try:
            self._cache.clear_image_cache(event.image_id)
        except OSError as err:
            logger.warning("unable to clear cache for %s: %s", event.image_id, err)

    def watch_image_events(self) -> None:
        """Clear cache entries when images are removed from the engine."""
        events.register_image_event(self.handle_image_event)

    def _extract_layers(
        self, image: ImageInfo, tmpdir: Path, token: CancellationToken | None
    ) -> ImageLayers:
        tar_file = tmpdir / f"{_safe_name(image.id)}.tar"
        self._exporter.export_image(image, tar_file, token)
        self._extractor(tar_file, tmpdir, token)
        return archive.get_layers_from_image_archive(tmpdir)

    @contextlib.contextmanager
    def _image_lock(self, image_id: str) -> Iterator[None]:
        """Serialize requests for the same image."""
        with self._image_locks_guard:
            image_lock = self._image_locks.get(image_id)
            if image_lock is None:
                image_lock = self._image_locks[image_id] = _ImageLock()
            image_lock.users += 1

        try:
            with image_lock.lock:
                yield
        finally:
            with self._image_locks_guard:
                image_lock.users -= 1
                if not image_lock.users:
                    del self._image_locks[image_id]


class _ImageLock:
    """A lock shared by the requests in flight for one image."""

    def __init__(self) -> None:
        self.lock = threading.Lock()
        self.users = 0


def _safe_name(image_id: str) -> str:
    return image_id.replace(":", "_").replace("/", "_")
