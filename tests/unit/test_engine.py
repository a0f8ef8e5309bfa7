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

import tarfile
from pathlib import Path

import pytest
import pytest_subprocess
from layers_explorer import errors
from layers_explorer.engine import CancellationToken, CliImageExporter, extract_archive
from layers_explorer.models import ImageInfo

from tests.helpers import make_layer_tar, tar_dir, tar_hardlink, tar_symlink


def _write_script(path: Path, content: str) -> Path:
    path.write_text(f"#!/bin/sh\n{content}\n")
    path.chmod(0o755)
    return path


class TestCancellationToken:
    """Cooperative cancellation."""

    def test_token_not_cancelled(self):
        token = CancellationToken()

        assert token.is_cancellation_requested is False
        token.raise_if_cancelled("test")

    def test_token_cancelled(self):
        token = CancellationToken()
        token.cancel()

        assert token.is_cancellation_requested is True
        with pytest.raises(errors.OperationCancelled) as raised:
            token.raise_if_cancelled("test operation")

        assert raised.value.operation == "test operation"
        assert str(raised.value) == "Operation cancelled: test operation."


class TestCliImageExporter:
    """Image export using the container engine command line."""

    def test_executable_for(self):
        exporter = CliImageExporter(
            {"docker.docker": "docker"}, default_executable="podman"
        )

        assert exporter.executable_for("docker.docker") == "docker"
        assert exporter.executable_for("podman.podman") == "podman"
        assert exporter.executable_for("") == "podman"

    def test_export_image(self, new_path, fake_process: pytest_subprocess.FakeProcess):
        dest = new_path / "image.tar"
        fake_process.register(
            ["podman", "save", "--output", str(dest), "sha256:1234"]
        )
        exporter = CliImageExporter()

        exporter.export_image(ImageInfo(id="sha256:1234"), dest)

        assert fake_process.call_count(
            ["podman", "save", "--output", str(dest), "sha256:1234"]
        ) == 1

    def test_export_image_engine(
        self, new_path, fake_process: pytest_subprocess.FakeProcess
    ):
        dest = new_path / "image.tar"
        fake_process.register(["docker", "save", "--output", str(dest), "abcd"])
        exporter = CliImageExporter({"docker.docker": "docker"})

        exporter.export_image(ImageInfo(id="abcd", engine_id="docker.docker"), dest)

        assert fake_process.call_count(
            ["docker", "save", "--output", str(dest), "abcd"]
        ) == 1

    def test_export_image_error(
        self, new_path, fake_process: pytest_subprocess.FakeProcess
    ):
        dest = new_path / "image.tar"
        fake_process.register(
            ["podman", "save", "--output", str(dest), "sha256:1234"],
            stderr="Error: sha256:1234: image not known\n",
            returncode=125,
        )
        exporter = CliImageExporter()

        with pytest.raises(errors.ExportError) as raised:
            exporter.export_image(ImageInfo(id="sha256:1234"), dest)

        assert raised.value.image_id == "sha256:1234"
        assert raised.value.message == "Error: sha256:1234: image not known"

    def test_export_image_error_without_message(
        self, new_path, fake_process: pytest_subprocess.FakeProcess
    ):
        dest = new_path / "image.tar"
        fake_process.register(
            ["podman", "save", "--output", str(dest), "sha256:1234"], returncode=2
        )
        exporter = CliImageExporter()

        with pytest.raises(errors.ExportError) as raised:
            exporter.export_image(ImageInfo(id="sha256:1234"), dest)

        assert raised.value.message == "command exited with code 2"

    def test_export_image_missing_executable(self, new_path):
        exporter = CliImageExporter(default_executable=str(new_path / "missing"))

        with pytest.raises(errors.ExportError) as raised:
            exporter.export_image(ImageInfo(id="sha256:1234"), new_path / "out.tar")

        assert raised.value.image_id == "sha256:1234"

    def test_export_image_real_process(self, new_path):
        script = _write_script(new_path / "engine", 'echo "$@" > "$3"')
        exporter = CliImageExporter(default_executable=str(script))

        exporter.export_image(ImageInfo(id="sha256:1234"), new_path / "out.tar")

        content = (new_path / "out.tar").read_text()
        assert content == f"save --output {new_path / 'out.tar'} sha256:1234\n"

    def test_export_image_cancelled(self, new_path):
        script = _write_script(new_path / "engine", "exec sleep 30")
        exporter = CliImageExporter(default_executable=str(script))
        token = CancellationToken()
        token.cancel()

        with pytest.raises(errors.OperationCancelled) as raised:
            exporter.export_image(
                ImageInfo(id="sha256:1234"), new_path / "out.tar", token
            )

        assert raised.value.operation == "export of image sha256:1234"


class TestExtractArchive:
    """Image archive extraction."""

    def test_extract(self, new_path):
        tarball = make_layer_tar(
            new_path / "image.tar",
            [
                ("manifest.json", b"[]"),
                tar_dir("blobs"),
                ("blobs/layer.tar", b"data"),
            ],
        )
        dest = new_path / "dest"
        dest.mkdir()

        extract_archive(tarball, dest)

        assert (dest / "manifest.json").read_text() == "[]"
        assert (dest / "blobs/layer.tar").read_bytes() == b"data"

    def test_extract_strips_prefix(self, new_path):
        tarball = make_layer_tar(
            new_path / "image.tar",
            [("/manifest.json", b"[]"), ("../../config.json", b"{}")],
        )
        dest = new_path / "dest"
        dest.mkdir()

        extract_archive(tarball, dest)

        assert sorted(p.name for p in dest.iterdir()) == [
            "config.json",
            "manifest.json",
        ]

    def test_extract_skips_escaping_members(self, new_path):
        tarball = make_layer_tar(
            new_path / "image.tar",
            [
                ("a/../../escaped", b"bad"),
                ("good", b"ok"),
                tar_hardlink("link", "x/../../../etc/passwd"),
            ],
        )
        dest = new_path / "dest"
        dest.mkdir()

        extract_archive(tarball, dest)

        assert not (new_path / "escaped").exists()
        assert not (dest / "link").exists()
        assert (dest / "good").read_text() == "ok"

    def test_extract_hardlink(self, new_path):
        tarball = make_layer_tar(
            new_path / "image.tar",
            [("target", b"content"), tar_hardlink("link", "./target")],
        )
        dest = new_path / "dest"
        dest.mkdir()

        extract_archive(tarball, dest)

        assert (dest / "link").read_text() == "content"

    def test_extract_symlink(self, new_path):
        tarball = make_layer_tar(
            new_path / "image.tar",
            [("target", b"content"), tar_symlink("link", "target")],
        )
        dest = new_path / "dest"
        dest.mkdir()

        extract_archive(tarball, dest)

        assert (dest / "link").is_symlink()
        assert (dest / "link").read_text() == "content"

    def test_extract_cancelled(self, new_path):
        tarball = make_layer_tar(new_path / "image.tar", [("file", b"data")])
        dest = new_path / "dest"
        dest.mkdir()
        token = CancellationToken()
        token.cancel()

        with pytest.raises(errors.OperationCancelled) as raised:
            extract_archive(tarball, dest, token)

        assert raised.value.operation == "extraction of image.tar"
        assert not (dest / "file").exists()

    def test_extract_invalid_archive(self, new_path):
        tarball = new_path / "image.tar"
        tarball.write_bytes(b"not a tarball" * 100)

        with pytest.raises(errors.ArchiveError) as raised:
            extract_archive(tarball, new_path)

        assert raised.value.archive_path == str(tarball)

    def test_extract_missing_archive(self, new_path):
        with pytest.raises(errors.ArchiveError):
            extract_archive(new_path / "missing.tar", new_path)

    def test_extract_compressed(self, new_path):
        tarball = make_layer_tar(
            new_path / "image.tar.gz", [("manifest.json", b"[]")], mode="w:gz"
        )
        dest = new_path / "dest"
        dest.mkdir()

        extract_archive(tarball, dest)

        assert (dest / "manifest.json").is_file()
        assert tarfile.is_tarfile(tarball)
