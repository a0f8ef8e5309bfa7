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

"""Register and dispatch container engine image events."""

import logging
from collections.abc import Callable
from typing import NamedTuple

from layers_explorer import errors

logger = logging.getLogger(__name__)

IMAGE_REMOVED_ACTIONS = frozenset({"remove", "delete"})


class ImageEvent(NamedTuple):
    """An image event emitted by a container engine.

    :param image_id: The identifier of the image.
    :param action: The event action, such as ``remove`` or ``pull``.
    """

    image_id: str
    action: str

    @property
    def is_removal(self) -> bool:
        """Whether the image was removed from the engine."""
        return self.action in IMAGE_REMOVED_ACTIONS


ImageEventCallback = Callable[[ImageEvent], None]

_IMAGE_EVENT_HOOKS: list[ImageEventCallback] = []


def register_image_event(func: ImageEventCallback) -> None:
    """Register a callback function for image events.

    :param func: The callback function to run when an event is received.
    """
    _ensure_not_defined(func)
    _IMAGE_EVENT_HOOKS.append(func)


def unregister_all() -> None:
    """Clear all existing registered callback functions."""
    _IMAGE_EVENT_HOOKS[:] = []


def notify_image_event(event: ImageEvent) -> None:
    """Run all registered image event callbacks.

    :param event: The event to dispatch.
    """
    logger.debug("image event: %s %s", event.action, event.image_id)
    for func in _IMAGE_EVENT_HOOKS:
        func(event)


def _ensure_not_defined(func: ImageEventCallback) -> None:
    for hook in _IMAGE_EVENT_HOOKS:
        if func == hook:
            raise errors.CallbackRegistrationError(
                f"callback function {getattr(hook, '__name__', hook)!r} "
                f"is already registered."
            )
