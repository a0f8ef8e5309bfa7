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

import pytest
from layers_explorer import events
from layers_explorer.utils import os_utils

from tests.helpers import FakePreferences


@pytest.fixture
def new_dir(monkeypatch, tmpdir):
    """Change to a new temporary directory."""
    monkeypatch.chdir(tmpdir)
    return tmpdir


@pytest.fixture
def new_path(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture(autouse=True)
def reset_event_hooks():
    yield
    events.unregister_all()


@pytest.fixture(autouse=True)
def no_write_delay(monkeypatch):
    """Don't wait between cache writes in tests."""
    monkeypatch.setattr(os_utils, "_WRITE_TIME_INTERVAL", 0)


@pytest.fixture
def fake_preferences() -> FakePreferences:
    return FakePreferences()
