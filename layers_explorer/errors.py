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

"""Layers explorer errors."""

import dataclasses
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pydantic_core import ErrorDetails


@dataclasses.dataclass(repr=True)
class LayersError(Exception):
    """Unexpected error.

    :param brief: Brief description of error.
    :param details: Detailed information.
    :param resolution: Recommendation, if any.
    """

    brief: str
    details: str | None = None
    resolution: str | None = None

    def __str__(self) -> str:
        components = [self.brief]

        if self.details:
            components.append(self.details)

        if self.resolution:
            components.append(self.resolution)

        return "\n".join(components)


class ParseError(LayersError):
    """An image archive document is malformed.

    :param document: The name of the offending document.
    :param message: The error message.
    """

    def __init__(self, document: str, message: str):
        self.document = document
        self.message = message
        brief = f"Failed to parse {document!r}."
        details = message
        resolution = "Make sure the image archive was saved correctly."

        super().__init__(brief=brief, details=details, resolution=resolution)

    @classmethod
    def from_validation_error(
        cls, *, document: str, error_list: list["ErrorDetails"]
    ) -> "ParseError":
        """Create a ParseError from a pydantic error list.

        :param document: The name of the document being parsed.
        :param error_list: A list of pydantic error definitions.
        """
        formatted_errors: list[str] = []

        for error in error_list:
            loc = error.get("loc")
            msg = error.get("msg")

            if not msg:
                continue

            field = cls._format_loc(loc) if loc else ""
            if not field:
                formatted_errors.append(f"- {msg}")
            elif error.get("type") == "missing":
                formatted_errors.append(f"- field {field!r} is required")
            else:
                formatted_errors.append(f"- {msg} in field {field!r}")

        return cls(document=document, message="\n".join(formatted_errors))

    @classmethod
    def _format_loc(cls, loc: tuple[int | str, ...]) -> str:
        """Format location."""
        loc_parts: list[str] = []
        for loc_part in loc:
            if isinstance(loc_part, str):
                loc_parts.append(loc_part)
            elif loc_parts:
                # Integer indicates an index. Go back and fix up previous part.
                previous_part = loc_parts.pop()
                loc_parts.append(f"{previous_part}[{loc_part}]")
            else:
                loc_parts.append(f"[{loc_part}]")

        return ".".join(loc_parts)


class ArchiveError(LayersError):
    """An image or layer archive could not be read.

    :param archive_path: The path to the archive.
    :param message: The error message.
    """

    def __init__(self, archive_path: str, message: str):
        self.archive_path = archive_path
        self.message = message
        brief = f"Failed to read archive {archive_path!r}: {message}"

        super().__init__(brief=brief)


class CacheReadError(LayersError):
    """A cache entry is corrupted or unreadable.

    :param filename: The cache file name.
    :param message: The error message.
    """

    def __init__(self, filename: str, message: str):
        self.filename = filename
        self.message = message
        brief = f"Failed to read cache file {filename!r}: {message}"

        super().__init__(brief=brief)


class CacheWriteError(LayersError):
    """A computed result could not be persisted in the cache.

    :param filename: The cache file name.
    :param message: The error message.
    """

    def __init__(self, filename: str, message: str):
        self.filename = filename
        self.message = message
        brief = f"Failed to write cache file {filename!r}: {message}"

        super().__init__(brief=brief)


class EvictionError(LayersError):
    """A cache file could not be removed while limiting the cache size.

    :param filename: The cache file name.
    :param message: The error message.
    """

    def __init__(self, filename: str, message: str):
        self.filename = filename
        self.message = message
        brief = f"Failed to evict cache file {filename!r}: {message}"
        resolution = "Make sure the cache directory is writable."

        super().__init__(brief=brief, resolution=resolution)


class ExportError(LayersError):
    """The container engine failed to save an image archive.

    :param image_id: The image identifier.
    :param message: The error message.
    """

    def __init__(self, image_id: str, message: str):
        self.image_id = image_id
        self.message = message
        brief = f"Failed to export image {image_id!r}."
        details = message
        resolution = "Make sure the container engine is running."

        super().__init__(brief=brief, details=details, resolution=resolution)


class OperationCancelled(LayersError):
    """The operation was cancelled by the caller.

    :param operation: The operation that was cancelled.
    """

    def __init__(self, operation: str):
        self.operation = operation
        brief = f"Operation cancelled: {operation}."

        super().__init__(brief=brief)


class LayersExtractionError(LayersError):
    """The filesystem layers of an image could not be obtained.

    :param image_id: The image identifier.
    :param message: The error message.
    """

    def __init__(self, image_id: str, message: str):
        self.image_id = image_id
        self.message = message
        brief = f"Error extracting image layers for {image_id!r}."
        details = message

        super().__init__(brief=brief, details=details)


class PreferencesError(LayersError):
    """The preferences file is invalid.

    :param message: The error message.
    """

    def __init__(self, message: str):
        self.message = message
        brief = f"Invalid preferences: {message}"
        resolution = "Review the preferences file and make sure it's correct."

        super().__init__(brief=brief, resolution=resolution)


class CallbackRegistrationError(LayersError):
    """Error in callback function registration.

    :param message: the error message.
    """

    def __init__(self, message: str):
        self.message = message
        brief = f"Callback registration error: {message}"

        super().__init__(brief=brief)
