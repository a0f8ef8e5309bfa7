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

"""Explore the filesystem layers of container images."""

from .archive import get_layers_from_image_archive
from .cache import LayersCache
from .engine import CancellationToken, CliImageExporter, ImageExporter, extract_archive
from .errors import LayersError
from .events import ImageEvent, notify_image_event
from .explorer import Explorer
from .models import (
    DirectoryEntry,
    FileEntry,
    FilesystemEntry,
    ImageInfo,
    ImageLayers,
    Layer,
    OpaqueWhiteoutEntry,
    SymlinkEntry,
    WhiteoutEntry,
)
from .preferences import Preferences


try:
    from ._version import __version__
except ImportError:  # pragma: no cover
    from importlib.metadata import version, PackageNotFoundError

    try:
        __version__ = version("layers_explorer")
    except PackageNotFoundError:
        __version__ = "dev"


__all__ = [
    "__version__",
    "CancellationToken",
    "CliImageExporter",
    "DirectoryEntry",
    "Explorer",
    "FileEntry",
    "FilesystemEntry",
    "ImageEvent",
    "ImageExporter",
    "ImageInfo",
    "ImageLayers",
    "Layer",
    "LayersCache",
    "LayersError",
    "OpaqueWhiteoutEntry",
    "Preferences",
    "SymlinkEntry",
    "WhiteoutEntry",
    "extract_archive",
    "get_layers_from_image_archive",
    "notify_image_event",
]
