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

"""Utilities related to the operating system."""

import contextlib
import logging
import os
import shutil
import tempfile
import time
from collections.abc import Iterator
from pathlib import Path

from layers_explorer.utils import package_name

logger = logging.getLogger(__name__)

_WRITE_TIME_INTERVAL = 0.02


class TimedWriter:
    """Enforce minimum times between writes.

    Ensure subsequent writes happen at least at the specified minimum
    interval apart from each other, otherwise hosts with low tick
    resolution may generate files with identical timestamps.
    """

    _last_write_time = 0.0

    @classmethod
    def write_bytes(cls, filepath: Path, data: bytes) -> None:
        """Replace the specified file with the given content.

        The data is written to a temporary file in the same directory which
        is then renamed over the destination, so readers never observe a
        partially written file.

        :param filepath: The path to the file to write to.
        :param data: The content to write.
        """
        delta = time.time() - cls._last_write_time
        if delta < _WRITE_TIME_INTERVAL:
            time.sleep(_WRITE_TIME_INTERVAL - delta)

        fd, temp_name = tempfile.mkstemp(
            dir=filepath.parent, prefix=f".{filepath.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as temp_file:
                temp_file.write(data)
            os.replace(temp_name, filepath)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(temp_name)
            raise

        cls._last_write_time = time.time()


@contextlib.contextmanager
def temporary_directory(*, base_dir: Path | None = None) -> Iterator[Path]:
    """Create a temporary directory removed when the context exits.

    Failure to remove the directory is logged and never replaces the
    outcome of the managed block.

    :param base_dir: Where to create the directory, the system default
        temporary location if not specified.

    :return: The path to the temporary directory.
    """
    temp_dir = Path(tempfile.mkdtemp(prefix=f"{package_name()}-", dir=base_dir))
    logger.debug("created temporary directory %s", temp_dir)
    try:
        yield temp_dir
    finally:
        try:
            shutil.rmtree(temp_dir)
        except OSError as err:
            logger.error("unable to delete directory %s: %s", temp_dir, err)
