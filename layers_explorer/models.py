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

"""Image and filesystem layer models."""

from collections.abc import Iterator
from typing import Annotated, Any, Literal, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, RootModel


class ImageInfo(BaseModel, frozen=True):
    """The container image being inspected.

    :param id: The image identity, usually a content digest.
    :param engine_id: The identifier of the container engine holding the image.
    """

    model_config = ConfigDict(extra="forbid")

    id: str = Field(min_length=1)
    engine_id: str = ""


def _entry_model_config() -> ConfigDict:
    return ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )


class FileEntry(BaseModel):
    """A regular file, hard link or any other non-directory entry."""

    model_config = _entry_model_config()

    type: Literal["file"] = "file"
    path: str
    mode: int = 0
    size: int = 0


class DirectoryEntry(BaseModel):
    """A directory entry."""

    model_config = _entry_model_config()

    type: Literal["directory"] = "directory"
    path: str
    mode: int = 0


class SymlinkEntry(BaseModel):
    """A symbolic link entry."""

    model_config = _entry_model_config()

    type: Literal["symlink"] = "symlink"
    path: str
    mode: int = 0
    link_path: str = Field(default="", alias="linkPath")


class WhiteoutEntry(BaseModel):
    """A path deleted in this layer relative to the previous layers."""

    model_config = _entry_model_config()

    type: Literal["whiteout"] = "whiteout"
    hidden_path: str = Field(
        validation_alias=AliasChoices("hiddenPath", "hidden_path", "path"),
        serialization_alias="hiddenPath",
    )


class OpaqueWhiteoutEntry(BaseModel):
    """A directory whose previous contents are deleted in this layer.

    Entries added under the directory in the same layer remain visible.
    """

    model_config = _entry_model_config()

    type: Literal["opaque-whiteout"] = "opaque-whiteout"
    directory_path: str = Field(
        validation_alias=AliasChoices("directoryPath", "directory_path", "path"),
        serialization_alias="directoryPath",
    )


FilesystemEntry = Annotated[
    Union[
        FileEntry,
        DirectoryEntry,
        SymlinkEntry,
        WhiteoutEntry,
        OpaqueWhiteoutEntry,
    ],
    Field(discriminator="type"),
]


class Layer(BaseModel):
    """A filesystem layer of an image.

    :param id: The short layer identifier.
    :param created_by: The build instruction that produced the layer, if known.
    :param entries: The filesystem entries in archive order.
    """

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )

    id: str
    created_by: str | None = Field(default=None, alias="createdBy")
    entries: list[FilesystemEntry] = Field(default_factory=list, alias="files")


class ImageLayers(BaseModel):
    """The ordered filesystem layers of an image, base layer first."""

    model_config = ConfigDict(extra="ignore")

    layers: list[Layer] = Field(default_factory=list)

    @classmethod
    def unmarshal(cls, data: dict[str, Any]) -> "ImageLayers":
        """Create and populate a new ``ImageLayers`` object from dictionary data.

        :param data: The dictionary data to unmarshal.

        :return: The newly created object.

        :raise TypeError: If data is not a dictionary.
        :raise pydantic.ValidationError: If the data fails validation.
        """
        if not isinstance(data, dict):
            raise TypeError("Image layers data must be a dictionary.")

        return cls.model_validate(data)

    def marshal(self) -> dict[str, Any]:
        """Create a dictionary containing the image layers data.

        :return: The newly created dictionary.
        """
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ManifestEntry(BaseModel):
    """A per-image descriptor in the archive ``manifest.json``."""

    model_config = ConfigDict(
        extra="ignore",
        populate_by_name=True,
    )

    config: str = Field(alias="Config")
    layers: list[str] = Field(alias="Layers")


class ImageManifest(RootModel):
    """The archive ``manifest.json`` document."""

    root: list[ManifestEntry]

    def __iter__(self) -> Iterator[ManifestEntry]:  # type: ignore[override]
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)

    def __getitem__(self, index: int) -> ManifestEntry:
        return self.root[index]


class HistoryEntry(BaseModel):
    """A build history record of the image configuration."""

    model_config = ConfigDict(extra="ignore")

    created_by: str | None = None
    empty_layer: bool = False


class ImageConfig(BaseModel):
    """The subset of the image configuration document used to label layers."""

    model_config = ConfigDict(extra="ignore")

    history: list[HistoryEntry] = Field(default_factory=list)
