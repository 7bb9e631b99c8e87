import os
import hashlib
import logging
from typing import Iterable, Optional, Set

import config
from checksum_client import ChecksumManifestClient
from data_classes import VerificationReport

logger = logging.getLogger(__name__)

CORE_FILE_EXTENSION = ".php"
# site specific files living next to the core files
SITE_FILES = ("wp-config.php",)


def md5_file(path: str, chunk_size: int = 65536) -> Optional[str]:
    """md5 of a file, None if it cannot be read"""
    digest = hashlib.md5()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                digest.update(chunk)
    except OSError as e:
        logger.debug(f"Could not hash file: {path}: {e}")
        return None
    return digest.hexdigest()


class ChecksumVerifier:
    """
    Compares the local core files against the trusted manifest.

    - modified: in the manifest, present locally, hash differs
    - unknown: a php file in a core-only scope (core directories, root level) but not in the manifest
    - missing: in the manifest but not present locally (informational)

    Manifest errors propagate, a failed fetch means no report at all.
    """

    def __init__(
        self,
        root_dir: str,
        version: str,
        locale: str = "en_US",
        client: Optional[ChecksumManifestClient] = None,
        excluded_dirs: Iterable[str] = config.NON_CORE_DIRECTORIES,
        ignored_files: Iterable[str] = config.CHECKSUM_IGNORED_FILES,
        core_dirs: Iterable[str] = config.CORE_DIRECTORIES,
    ):
        self.root_dir = os.path.abspath(root_dir)
        self.version = version
        self.locale = locale
        self.client = client or ChecksumManifestClient()
        self.excluded_dirs = tuple(d.strip("/") for d in excluded_dirs)
        self.ignored_files = set(ignored_files)
        self.core_dirs = tuple(d.strip("/") for d in core_dirs)

    def _is_excluded(self, path: str) -> bool:
        return any(path == d or path.startswith(d + "/") for d in self.excluded_dirs)

    def _relative(self, path: str) -> str:
        return os.path.relpath(path, self.root_dir).replace(os.sep, "/")

    def local_core_files(self) -> Set[str]:
        """core-only php files on disk: below the core directories and at the root level"""
        files = set()

        for name in os.listdir(self.root_dir):
            full_path = os.path.join(self.root_dir, name)
            if (
                os.path.isfile(full_path)
                and name.endswith(CORE_FILE_EXTENSION)
                and name not in SITE_FILES
            ):
                files.add(name)

        for core_dir in self.core_dirs:
            for current, dirs, names in os.walk(os.path.join(self.root_dir, core_dir)):
                for name in names:
                    if not name.endswith(CORE_FILE_EXTENSION):
                        continue
                    relative = self._relative(os.path.join(current, name))
                    if not self._is_excluded(relative):
                        files.add(relative)

        return files

    def verify(self) -> VerificationReport:
        manifest = self.client.fetch(self.version, self.locale)
        report = VerificationReport()

        expected = {
            path: checksum.lower()
            for path, checksum in manifest.checksums.items()
            if not self._is_excluded(path)
        }

        for path, checksum in expected.items():
            if path in self.ignored_files:
                continue
            full_path = os.path.join(self.root_dir, *path.split("/"))
            if not os.path.isfile(full_path):
                report.missing.add(path)
                continue
            local_checksum = md5_file(full_path)
            if local_checksum is not None and local_checksum != checksum:
                report.modified.add(path)

        report.unknown = {path for path in self.local_core_files() if path not in expected}

        logger.info(
            f"Checksum verification: {len(report.modified)} modified, "
            f"{len(report.unknown)} unknown, {len(report.missing)} missing"
        )
        return report
