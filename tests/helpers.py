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

"""Helpers to build image archives in tests."""

import io
import json
import tarfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any


class FakePreferences:
    """Preferences with a fixed cache size."""

    def __init__(self, cache_size: int = 1) -> None:
        self.cache_size = cache_size

    def get_cache_size(self) -> int:
        return self.cache_size


def make_layer_tar(
    path: Path, members: Iterable[tarfile.TarInfo | tuple[str, bytes]], mode="w"
) -> Path:
    """Create a layer tarball.

    Members are either ``TarInfo`` objects, added without content, or
    ``(name, content)`` tuples describing regular files.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    with tarfile.open(path, mode) as tar:
        for member in members:
            if isinstance(member, tarfile.TarInfo):
                tar.addfile(member)
            else:
                name, content = member
                info = tarfile.TarInfo(name)
                info.size = len(content)
                info.mode = 0o644
                tar.addfile(info, io.BytesIO(content))
    return path


def tar_dir(name: str, mode: int = 0o755) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.DIRTYPE
    info.mode = mode
    return info


def tar_symlink(name: str, target: str, mode: int = 0o777) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.SYMTYPE
    info.linkname = target
    info.mode = mode
    return info


def tar_hardlink(name: str, target: str) -> tarfile.TarInfo:
    info = tarfile.TarInfo(name)
    info.type = tarfile.LNKTYPE
    info.linkname = target
    info.mode = 0o644
    return info


def write_image_archive(
    archive_dir: Path,
    layers: dict[str, list[Any]],
    history: list[dict[str, Any]] | None = None,
    *,
    config_name: str = "config.json",
) -> None:
    """Write an extracted image archive with the given layers and history."""
    archive_dir.mkdir(parents=True, exist_ok=True)
    for layer_path, members in layers.items():
        make_layer_tar(archive_dir / layer_path, members)

    config: dict[str, Any] = {"architecture": "amd64", "os": "linux"}
    if history is not None:
        config["history"] = history
    (archive_dir / config_name).write_text(json.dumps(config))

    manifest = [
        {
            "Config": config_name,
            "RepoTags": ["example.com/image:latest"],
            "Layers": list(layers),
        }
    ]
    (archive_dir / "manifest.json").write_text(json.dumps(manifest))
