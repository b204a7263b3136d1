"""
Release packaging: copy an install tree into dist/ and compress it.
"""

import hashlib
import shutil
import tarfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .errors import PackagingError
from .platforms import Target
from .utils import human_size, log_info, log_step, log_success

# Top-level directory inside every release archive
RELEASE_DIR_NAME = "esp-clang"

class Packager:
    """Turn an installed toolchain into dist/<version>-<target>.tar.xz"""

    def __init__(self, dist_dir: Path, version: str):
        self.dist_dir = Path(dist_dir)
        self.version = version

    def target_dir(self, target: Target) -> Path:
        """Staging directory for one target under dist/"""
        return self.dist_dir / target.triple

    def release_dir(self, target: Target) -> Path:
        """Copy of the install tree that becomes the archive root"""
        return self.target_dir(target) / RELEASE_DIR_NAME

    def archive_path(self, target: Target) -> Path:
        """dist/<version>-<target>.tar.xz"""
        return self.dist_dir / f"{self.version}-{target.triple}.tar.xz"

    def manifest_path(self, target: Target) -> Path:
        """Build description written next to the archive, outside of it"""
        return self.dist_dir / f"{self.version}-{target.triple}.yml"

    def package(self, target: Target, install_dir: Path,
                manifest: Optional[Dict[str, Any]] = None) -> Path:
        """
        Package ``install_dir`` for ``target`` and return the archive path.

        The release directory for the target is recreated from scratch, so it
        never mixes files from two builds.
        """
        log_step("PACKAGING", f"Creating release package for {target}")

        install_dir = Path(install_dir)
        if not install_dir.is_dir():
            raise PackagingError(f"Install directory {install_dir} not found")

        target_dir = self.target_dir(target)
        release_dir = self.release_dir(target)
        if target_dir.exists():
            shutil.rmtree(target_dir)
        target_dir.mkdir(parents=True)

        log_info(f"Creating release structure in {release_dir}")
        shutil.copytree(install_dir, release_dir, symlinks=True)

        archive = self.archive_path(target)
        if archive.exists():
            archive.unlink()

        manifest_file = self.manifest_path(target)
        if manifest is not None:
            manifest_file.write_text(yaml.safe_dump(manifest, sort_keys=False))
        elif manifest_file.exists():
            manifest_file.unlink()

        log_info("Creating tarball package...")
        with tarfile.open(archive, "w:xz") as tar:
            tar.add(release_dir, arcname=RELEASE_DIR_NAME)

        checksum_file = archive.with_name(archive.name + ".sha256")
        checksum_file.write_text(f"{sha256sum(archive)}  {archive.name}\n")

        log_success(f"Tarball created: {archive}")
        log_info(f"Package size: {human_size(archive.stat().st_size)}")
        return archive

def sha256sum(path: Path) -> str:
    digest = hashlib.sha256()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(1 << 20), b''):
            digest.update(chunk)
    return digest.hexdigest()
