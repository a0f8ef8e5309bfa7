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

"""Image layers exploration command line tool.

This is the main entry point for the layers_explorer package, invoked
when running `python -mlayers_explorer`. It resolves the filesystem
layers of an image saved by a container engine and displays them.
"""

import argparse
import logging
import sys
from pathlib import Path

import yaml
from xdg import BaseDirectory  # type: ignore

import layers_explorer
import layers_explorer.errors
from layers_explorer import CliImageExporter, Explorer, ImageInfo
from layers_explorer.cache import LayersCache
from layers_explorer.preferences import Preferences


def main() -> None:
    """Run the command-line interface."""
    options = _parse_arguments()

    if options.version:
        print(f"layers-explorer {layers_explorer.__version__}")
        sys.exit()

    if not options.image:
        print("Error: an image identifier is required.", file=sys.stderr)
        sys.exit(4)

    if options.trace:
        log_level = logging.DEBUG
    else:
        log_level = logging.INFO

    logging.basicConfig(level=log_level)

    try:
        _process_image(options)
    except OSError as err:
        msg = err.strerror
        if err.filename:
            msg = f"{err.filename}: {msg}"
        print(f"Error: {msg}.", file=sys.stderr)
        sys.exit(1)
    except layers_explorer.errors.LayersExtractionError as err:
        print(f"Error: {err}", file=sys.stderr)
        sys.exit(2)
    except layers_explorer.errors.LayersError as err:
        print(f"Error: {err}", file=sys.stderr)
        sys.exit(3)


def _process_image(options: argparse.Namespace) -> None:
    storage_dir = options.storage_dir
    if not storage_dir:
        storage_dir = BaseDirectory.save_cache_path("layers-explorer")

    config_file = options.config
    if not config_file:
        config_file = Path(BaseDirectory.xdg_config_home, "layers-explorer.yaml")

    preferences = Preferences(Path(config_file), cache_size=options.cache_size)
    cache = LayersCache(preferences, Path(storage_dir))
    cache.init()

    if options.clear:
        cache.clear_image_cache(options.image)
        print(f"Removed cached layers of {options.image}.")
        return

    exporter = CliImageExporter(default_executable=options.engine)
    explorer = Explorer(cache, exporter)
    image = ImageInfo(id=options.image, engine_id=options.engine)

    try:
        result = explorer.get_filesystem_layers(image)
    except (KeyboardInterrupt, layers_explorer.errors.OperationCancelled):
        print("Cancelled.", file=sys.stderr)
        sys.exit(130)

    print(yaml.safe_dump(result.marshal(), sort_keys=False), end="")


def _parse_arguments() -> argparse.Namespace:
    prog = "python -m layers_explorer"
    description = (
        "Display the filesystem changes introduced by each layer of a "
        "container image."
    )

    parser = argparse.ArgumentParser(prog=prog, description=description, add_help=False)
    parser.add_argument(
        "-h",
        "--help",
        action="help",
        default=argparse.SUPPRESS,
        help="Show this help message and exit.",
    )
    parser.add_argument(
        "image",
        nargs="?",
        help="The identifier of the image to inspect.",
    )
    parser.add_argument(
        "--engine",
        metavar="name",
        default="podman",
        help="The container engine executable. Default is 'podman'.",
    )
    parser.add_argument(
        "--storage-dir",
        metavar="dirname",
        default="",
        help="Set an alternate cache storage location.",
    )
    parser.add_argument(
        "--config",
        metavar="filename",
        default="",
        help="The preferences file. Default is 'layers-explorer.yaml' in the "
        "user configuration directory.",
    )
    parser.add_argument(
        "--cache-size",
        metavar="MiB",
        type=int,
        help="Override the maximum cache size.",
    )
    parser.add_argument(
        "--clear",
        action="store_true",
        help="Remove the cached layers of the image and exit.",
    )
    parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable debug messages.",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Display the layers-explorer version and exit.",
    )

    return parser.parse_args()
