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

"""OCI whiteout markers classification.

Relevant OCI documentation available at:
https://github.com/opencontainers/image-spec/blob/main/layer.md#whiteouts
"""

from pathlib import PurePath, PurePosixPath

WHITEOUT_PREFIX = ".wh."
OPAQUE_WHITEOUT_MARKER = ".wh..wh..opq"


def is_whiteout_marker(path: str | PurePath) -> bool:
    """Verify if the given path is an OCI whiteout marker.

    Opaque directory markers also start with the whiteout prefix, callers
    must check :func:`is_opaque_whiteout_marker` first.

    :param path: The archive path to verify.

    :returns: Whether the last path element starts with the whiteout prefix.
    """
    return PurePosixPath(path).name.startswith(WHITEOUT_PREFIX)


def is_opaque_whiteout_marker(path: str | PurePath) -> bool:
    """Verify if the given path is an OCI opaque directory marker.

    :param path: The archive path to verify.

    :returns: Whether the last path element is the opaque directory marker.
    """
    return PurePosixPath(path).name == OPAQUE_WHITEOUT_MARKER


def hidden_path_for(path: str | PurePath) -> str:
    """Find the path deleted by a whiteout marker.

    :param path: The whiteout marker path.

    :returns: The path that was whited out, in the same parent directory.

    :raises ValueError: If the path is not a whiteout marker.
    """
    if not is_whiteout_marker(path):
        raise ValueError(f"{str(path)!r} is not an OCI whiteout file")

    marker = PurePosixPath(path)
    return str(marker.parent / marker.name[len(WHITEOUT_PREFIX) :])


def opaque_directory_for(path: str | PurePath) -> str:
    """Find the directory made opaque by an opaque directory marker.

    :param path: The opaque directory marker path.

    :returns: The directory whose previous contents are hidden.

    :raises ValueError: If the path is not an opaque directory marker.
    """
    if not is_opaque_whiteout_marker(path):
        raise ValueError(f"{str(path)!r} is not an OCI opaque directory marker")

    return str(PurePosixPath(path).parent)
