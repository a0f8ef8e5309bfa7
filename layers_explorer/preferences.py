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

"""User preferences for the layers explorer."""

import logging
from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import BaseModel, ConfigDict, Field

from layers_explorer import errors

logger = logging.getLogger(__name__)

DEFAULT_CACHE_SIZE = 500
"""The default maximum cache size, in MiB."""


class PreferencesModel(BaseModel):
    """The preferences file contents."""

    model_config = ConfigDict(
        extra="forbid",
        alias_generator=lambda s: s.replace("_", "-"),
        populate_by_name=True,
    )

    cache_size: int = Field(default=DEFAULT_CACHE_SIZE, ge=0)

    @classmethod
    def unmarshal(cls, data: dict[str, Any]) -> "PreferencesModel":
        """Create and populate a new ``PreferencesModel`` from dictionary data.

        :param data: The dictionary data to unmarshal.

        :return: The newly created object.

        :raise TypeError: If data is not a dictionary.
        """
        if not isinstance(data, dict):
            raise TypeError("Preferences data must be a dictionary.")

        return cls.model_validate(data)


class Preferences:
    """Access to the layers explorer preferences.

    Values are read from the preferences file on every access, so that
    changes take effect without restarting the application.

    :param config_file: The YAML preferences file. If not specified, or if
        the file doesn't exist, default values are used.
    :param cache_size: A fixed maximum cache size in MiB, overriding the
        preferences file.
    """

    def __init__(
        self, config_file: Path | None = None, *, cache_size: int | None = None
    ) -> None:
        if cache_size is not None and cache_size < 0:
            raise errors.PreferencesError("cache size must not be negative")

        self._config_file = config_file
        self._cache_size = cache_size

    def get_cache_size(self) -> int:
        """Return the maximum cache size, in MiB.

        :raises PreferencesError: If the preferences file is invalid.
        """
        if self._cache_size is not None:
            return self._cache_size

        return self._load().cache_size

    def _load(self) -> PreferencesModel:
        if self._config_file is None:
            return PreferencesModel()

        try:
            with open(self._config_file) as yaml_file:
                data = yaml.safe_load(yaml_file)
        except FileNotFoundError:
            return PreferencesModel()
        except (OSError, yaml.YAMLError) as err:
            raise errors.PreferencesError(
                f"cannot read {str(self._config_file)!r}: {err}"
            ) from err

        logger.debug("loaded preferences from %s", self._config_file)
        if data is None:
            return PreferencesModel()

        try:
            return PreferencesModel.unmarshal(data)
        except (TypeError, pydantic.ValidationError) as err:
            raise errors.PreferencesError(str(err)) from err
