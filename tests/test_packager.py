"""
Tests for release packaging.
"""

import tarfile
from pathlib import Path

import pytest
import yaml

from clang_release.errors import PackagingError
from clang_release.packager import RELEASE_DIR_NAME, Packager, sha256sum

from conftest import TAG


@pytest.fixture
def install_tree(tmp_path: Path) -> Path:
    install = tmp_path / "install" / "x86_64-linux-gnu" / "single"
    for sub in ("bin", "include", "lib", "share"):
        (install / sub).mkdir(parents=True)
    (install / "bin" / "clang").write_text("clang")
    (install / "lib" / "libclang.a").write_text("archive")
    return install


@pytest.fixture
def packager(tmp_path: Path) -> Packager:
    return Packager(tmp_path / "dist", TAG)


def test_archive_layout(packager, catalog, install_tree):
    target = catalog.resolve("x86_64-linux-gnu")
    archive = packager.package(target, install_tree)

    assert archive == packager.dist_dir / f"{TAG}-x86_64-linux-gnu.tar.xz"
    with tarfile.open(archive, "r:xz") as tar:
        names = set(tar.getnames())
    assert {f"{RELEASE_DIR_NAME}/{sub}" for sub in ("bin", "include", "lib", "share")} <= names
    assert f"{RELEASE_DIR_NAME}/bin/clang" in names
    assert all(name.split("/")[0] == RELEASE_DIR_NAME for name in names)


def test_release_dir_reflects_only_latest_build(packager, catalog, install_tree):
    target = catalog.resolve("x86_64-linux-gnu")
    leftover = packager.release_dir(target) / "bin" / "from-previous-build"
    leftover.parent.mkdir(parents=True)
    leftover.write_text("old")
    stray = packager.target_dir(target) / "notes.txt"
    stray.write_text("old")

    archive = packager.package(target, install_tree)

    assert not leftover.exists()
    assert not stray.exists()
    with tarfile.open(archive, "r:xz") as tar:
        assert f"{RELEASE_DIR_NAME}/bin/from-previous-build" not in tar.getnames()


def test_missing_install_dir(packager, catalog, tmp_path):
    target = catalog.resolve("x86_64-linux-gnu")
    with pytest.raises(PackagingError):
        packager.package(target, tmp_path / "does-not-exist")
    assert not packager.target_dir(target).exists()


def test_manifest_and_checksum(packager, catalog, install_tree):
    target = catalog.resolve("x86_64-linux-gnu")
    archive = packager.package(target, install_tree, manifest={"target": target.triple, "version": TAG})

    manifest_file = packager.dist_dir / f"{TAG}-x86_64-linux-gnu.yml"
    assert yaml.safe_load(manifest_file.read_text()) == {"target": "x86_64-linux-gnu", "version": TAG}
    with tarfile.open(archive, "r:xz") as tar:
        top_level = {name for name in tar.getnames() if name.count("/") == 1}
    assert top_level == {f"{RELEASE_DIR_NAME}/{sub}" for sub in ("bin", "include", "lib", "share")}

    checksum = archive.with_name(archive.name + ".sha256").read_text()
    assert checksum == f"{sha256sum(archive)}  {archive.name}\n"


def test_targets_do_not_share_release_dirs(packager, catalog, install_tree):
    linux = packager.package(catalog.resolve("x86_64-linux-gnu"), install_tree)
    arm = packager.package(catalog.resolve("aarch64-linux-gnu"), install_tree)

    assert linux != arm
    assert linux.exists() and arm.exists()
