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

"""Container engine integration: image export and archive extraction."""

import abc
import logging
import os
import re
import subprocess
import tarfile
import threading
from collections.abc import Iterator, Mapping
from pathlib import Path

from overrides import overrides

from layers_explorer import errors
from layers_explorer.models import ImageInfo

logger = logging.getLogger(__name__)

_POLL_INTERVAL = 0.1


class CancellationToken:
    """A cooperative cancellation signal shared with long-running operations."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        """Request the cancellation of the operations using this token."""
        self._event.set()

    @property
    def is_cancellation_requested(self) -> bool:
        """Whether cancellation was requested."""
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str) -> None:
        """Interrupt the current operation if cancellation was requested.

        :param operation: The name of the operation being executed.

        :raises OperationCancelled: If cancellation was requested.
        """
        if self._event.is_set():
            raise errors.OperationCancelled(operation)


class ImageExporter(abc.ABC):
    """Save images from a container engine as tar archives."""

    @abc.abstractmethod
    def export_image(
        self,
        image: ImageInfo,
        destination: Path,
        token: CancellationToken | None = None,
    ) -> None:
        """Write a tar archive of the image layers.

        :param image: The image to export.
        :param destination: The path of the tar archive to create.
        :param token: The cancellation token for this operation.

        :raises ExportError: If the image could not be exported.
        :raises OperationCancelled: If the operation was cancelled.
        """


class CliImageExporter(ImageExporter):
    """Export images using the ``save`` command of a container engine CLI.

    :param executables: A mapping of engine identifiers to the engine
        executable to run.
    :param default_executable: The executable to use for engines not
        listed in ``executables``.
    """

    def __init__(
        self,
        executables: Mapping[str, str] | None = None,
        *,
        default_executable: str = "podman",
    ) -> None:
        self._executables = dict(executables or {})
        self._default_executable = default_executable

    def executable_for(self, engine_id: str) -> str:
        """Return the executable used for the given engine."""
        return self._executables.get(engine_id, self._default_executable)

    @overrides
    def export_image(
        self,
        image: ImageInfo,
        destination: Path,
        token: CancellationToken | None = None,
    ) -> None:
        command = [
            self.executable_for(image.engine_id),
            "save",
            "--output",
            str(destination),
            image.id,
        ]
        logger.debug("export image: %s", command)

        try:
            proc = subprocess.Popen(
                command,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                universal_newlines=True,
            )
        except OSError as err:
            raise errors.ExportError(image.id, str(err)) from err

        while True:
            try:
                _, stderr = proc.communicate(timeout=_POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if token and token.is_cancellation_requested:
                    proc.terminate()
                    proc.communicate()
                    raise errors.OperationCancelled(
                        f"export of image {image.id}"
                    ) from None

        if proc.returncode:
            message = (stderr or "").strip()
            if not message:
                message = f"command exited with code {proc.returncode}"
            raise errors.ExportError(image.id, message)


def extract_archive(
    tarball: Path, destination: Path, token: CancellationToken | None = None
) -> None:
    """Extract all members of a tar archive.

    Member names are made relative to the destination and members that
    would be written outside of it are skipped.

    :param tarball: The tar archive to extract.
    :param destination: The directory to extract to.
    :param token: The cancellation token for this operation.

    :raises ArchiveError: If the archive cannot be read or extracted.
    :raises OperationCancelled: If the operation was cancelled.
    """
    operation = f"extraction of {tarball.name}"

    try:
        with tarfile.open(tarball) as tar:
            _extract_members(tar, destination, token, operation)
    except (OSError, EOFError, tarfile.TarError) as err:
        raise errors.ArchiveError(str(tarball), str(err)) from err

    if token:
        token.raise_if_cancelled(operation)


def _extract_members(
    tar: tarfile.TarFile,
    destination: Path,
    token: CancellationToken | None,
    operation: str,
) -> None:
    def filter_members(tar: tarfile.TarFile) -> Iterator[tarfile.TarInfo]:
        """Strip leading path elements and ban dangerous names."""
        for member in tar.getmembers():
            if token:
                token.raise_if_cancelled(operation)

            _strip_prefix(member)
            if not member.name or _escapes(member.name):
                logger.debug("skip archive member %r", member.name)
                continue
            if member.islnk() and _escapes(member.linkname):
                logger.debug("skip archive member %r", member.name)
                continue

            yield member

    tar.extractall(members=filter_members(tar), path=destination)


def _strip_prefix(member: tarfile.TarInfo) -> None:
    # strip leading '/', './' or '../' as many times as needed
    member.name = re.sub(r"^(\.{0,2}/)*", r"", member.name)
    # do the same for linkname if this is a hardlink
    if member.islnk() and not member.issym():
        member.linkname = re.sub(r"^(\.{0,2}/)*", r"", member.linkname)


def _escapes(name: str) -> bool:
    return os.path.normpath(name).split(os.sep)[0] == ".."
