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

"""Read filesystem layers from an extracted image archive.

The archive directory is the result of extracting the output of
``docker save`` or ``podman save``: a ``manifest.json`` document listing
the layer tarballs and the image configuration document of each image.
"""

import logging
import re
import tarfile
from pathlib import Path, PurePosixPath

import pydantic

from layers_explorer import errors, whiteouts
from layers_explorer.models import (
    DirectoryEntry,
    FileEntry,
    FilesystemEntry,
    HistoryEntry,
    ImageConfig,
    ImageLayers,
    ImageManifest,
    Layer,
    OpaqueWhiteoutEntry,
    SymlinkEntry,
    WhiteoutEntry,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
LAYER_ID_LENGTH = 12

_LEGACY_LAYER_NAME = "layer.tar"


def get_layers_from_image_archive(archive_dir: Path) -> ImageLayers:
    """Obtain the filesystem layers of the first image in an extracted archive.

    :param archive_dir: The directory containing the extracted image archive.

    :returns: The image layers, base layer first.

    :raises ParseError: If the manifest or configuration document is malformed.
    :raises ArchiveError: If a layer archive cannot be read.
    """
    manifest = read_manifest(archive_dir)
    if not manifest:
        logger.debug("empty manifest in %s", archive_dir)
        return ImageLayers(layers=[])

    descriptor = manifest[0]
    config = read_image_config(archive_dir, descriptor.config)

    layers: list[Layer] = []
    for layer_path in descriptor.layers:
        logger.debug("scan layer %s", layer_path)
        layers.append(
            Layer(
                id=layer_id_for(layer_path),
                entries=scan_layer(archive_dir / layer_path),
            )
        )

    align_history(layers, config.history)

    return ImageLayers(layers=layers)


def read_manifest(archive_dir: Path) -> ImageManifest:
    """Read and validate the archive manifest.

    :param archive_dir: The directory containing the extracted image archive.

    :returns: The list of image descriptors.

    :raises ParseError: If the manifest is missing or malformed.
    """
    data = _read_document(archive_dir / MANIFEST_FILE, MANIFEST_FILE)
    try:
        return ImageManifest.model_validate_json(data)
    except pydantic.ValidationError as err:
        raise errors.ParseError.from_validation_error(
            document=MANIFEST_FILE, error_list=err.errors()
        ) from err


def read_image_config(archive_dir: Path, config_path: str) -> ImageConfig:
    """Read and validate an image configuration document.

    :param archive_dir: The directory containing the extracted image archive.
    :param config_path: The path to the configuration document in the archive.

    :returns: The image configuration.

    :raises ParseError: If the configuration document is missing or malformed.
    """
    data = _read_document(archive_dir / config_path, config_path)
    try:
        return ImageConfig.model_validate_json(data)
    except pydantic.ValidationError as err:
        raise errors.ParseError.from_validation_error(
            document=config_path, error_list=err.errors()
        ) from err


def _read_document(path: Path, document: str) -> bytes:
    try:
        return path.read_bytes()
    except OSError as err:
        raise errors.ParseError(document, str(err)) from err


def scan_layer(layer_tar: Path) -> list[FilesystemEntry]:
    """List the filesystem entries of a layer archive.

    :param layer_tar: The path to the layer tarball, possibly compressed.

    :returns: The classified entries, in archive order.

    :raises ArchiveError: If the layer archive cannot be read.
    """
    entries: list[FilesystemEntry] = []
    try:
        with tarfile.open(layer_tar) as tar:
            for member in tar:
                entry = classify_member(member)
                if entry is not None:
                    entries.append(entry)
    except (OSError, EOFError, tarfile.TarError) as err:
        raise errors.ArchiveError(str(layer_tar), str(err)) from err

    logger.debug("%d entries in layer %s", len(entries), layer_tar)
    return entries


def classify_member(member: tarfile.TarInfo) -> FilesystemEntry | None:
    """Convert a layer tarball member to a filesystem entry.

    :param member: The tarball member.

    :returns: The filesystem entry, or None for the archive root.
    """
    path = normalize_path(member.name)
    if not path:
        return None

    mode = member.mode or 0

    if whiteouts.is_opaque_whiteout_marker(path):
        return OpaqueWhiteoutEntry(
            directory_path=whiteouts.opaque_directory_for(path)
        )

    if whiteouts.is_whiteout_marker(path):
        return WhiteoutEntry(hidden_path=whiteouts.hidden_path_for(path))

    if member.isdir():
        return DirectoryEntry(path=path, mode=mode)

    if member.issym():
        return SymlinkEntry(path=path, mode=mode, link_path=member.linkname or "")

    return FileEntry(path=path, mode=mode, size=member.size)


def normalize_path(name: str) -> str:
    """Make a tarball member name relative to the archive root."""
    # strip leading '/', './' or '../' as many times as needed
    name = re.sub(r"^(\.{0,2}/)*", r"", name)
    if name in (".", ".."):
        return ""
    return name.rstrip("/")


def layer_id_for(layer_path: str) -> str:
    """Obtain the short identifier of a layer.

    :param layer_path: The path to the layer tarball in the archive, either
        ``<digest>``, ``<digest>.tar`` or the legacy ``<id>/layer.tar``.

    :returns: The first characters of the layer content identifier.
    """
    path = PurePosixPath(layer_path)
    name = path.name
    if name == _LEGACY_LAYER_NAME and path.parent.name:
        name = path.parent.name

    return name[:LAYER_ID_LENGTH]


def align_history(layers: list[Layer], history: list[HistoryEntry]) -> None:
    """Label layers with the build instruction that created them.

    History records are matched from the last one backwards, as records of
    empty layers have no layer tarball and can appear anywhere in the list.

    :param layers: The layers to label, base layer first.
    :param history: The image build history, oldest record first.
    """
    index = len(layers) - 1
    for record in reversed(history):
        if record.empty_layer:
            continue

        if index < 0:
            logger.debug("ignore history record without layer: %s", record.created_by)
            continue

        layers[index].created_by = record.created_by
        index -= 1
