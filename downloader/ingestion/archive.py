"""
Uploaded archive handling.

Locates the archive a user uploaded for a project and unpacks it into
the project's destination directory. Extraction guards against:
- Path traversal (``../`` entries, absolute entries)
- Symlink escapes (links, devices and other special entries are never
  materialized)
- A single redundant wrapper directory (stripped so the layout matches
  a git clone)

ZIP archives are indexed up front, so a corrupt container is reported
before anything is written. TAR+GZIP is a streaming format: the
strip-prefix scan catches most corruption early, but damage found
while writing can leave the files extracted so far in place.
"""

import gzip
import logging
import os
import shutil
import stat
import tarfile
import zipfile
import zlib
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Union

from downloader.core.config import ArchiveConfig
from downloader.core.exceptions import (
    ArchiveNotFound,
    CorruptArchive,
    IllegalPath,
    UnsupportedFormat,
)

logger = logging.getLogger(__name__)

ArchiveSource = Union[str, Path, BinaryIO]

ARCHIVE_SUFFIXES = (".zip", ".tar.gz", ".tgz")

# Decode failures raised while streaming a tar.gz
TAR_DECODE_ERRORS = (tarfile.TarError, gzip.BadGzipFile, zlib.error, EOFError)
ZIP_DECODE_ERRORS = (zipfile.BadZipFile, zlib.error, EOFError)


class ArchiveFormat(Enum):
    """Supported archive container formats."""
    ZIP = "zip"
    TAR_GZ = "tar.gz"


def detect_format(filename: str) -> ArchiveFormat:
    """
    Determine an archive's format from its filename suffix.

    Content is never sniffed.

    Raises:
        UnsupportedFormat: If the suffix is not .zip, .tar.gz or .tgz.
    """
    lower = filename.lower()
    if lower.endswith(".zip"):
        return ArchiveFormat.ZIP
    if lower.endswith(".tar.gz") or lower.endswith(".tgz"):
        return ArchiveFormat.TAR_GZ
    raise UnsupportedFormat(filename)


def detect_strip_prefix(names: Iterable[str]) -> Optional[str]:
    """
    Find the single top-level directory shared by every entry.

    Directory entries must be passed with a trailing ``/``. Returns the
    shared segment plus ``/``, or None when any entry sits at the top
    level, entries disagree, or there are no entries at all. An empty
    or ``..`` segment is never treated as a wrapper, so absolute and
    traversing entries are still rejected during extraction.
    """
    root = None
    for name in names:
        parts = name.split("/")
        if len(parts) < 2:
            return None
        if root is None:
            root = parts[0]
        elif parts[0] != root:
            return None

    if root in (None, "", ".."):
        return None
    return root + "/"


@dataclass
class ExtractionReport:
    """Counts produced by a single extraction."""

    archive_format: ArchiveFormat
    destination: Path
    strip_prefix: Optional[str] = None
    files_written: int = 0
    directories_created: int = 0
    entries_skipped: int = 0


class ArchiveLocator:
    """
    Finds a project's uploaded archive.

    Uploads are stored as ``{root}/{tenant}/{project_id}/{filename}`` by
    the upload receiver. The tenant is not known here, so every tenant
    directory is searched in name order.
    """

    def __init__(self, config: ArchiveConfig = None):
        self.config = config or ArchiveConfig()

    def locate(self, root: Union[str, Path], project_id: str) -> Path:
        """
        Locate the uploaded archive for a project.

        Args:
            root: Upload storage root.
            project_id: Project whose archive is wanted.

        Returns:
            Path to the first archive found.

        Raises:
            ArchiveNotFound: If no tenant holds an archive for the project.
        """
        root = Path(root)
        try:
            tenants = sorted(root.iterdir(), key=lambda p: p.name)
        except OSError as e:
            raise ArchiveNotFound(
                str(project_id), str(root), f"cannot read upload root ({e})"
            ) from e

        for tenant in tenants:
            if tenant.name in self.config.reserved_directories:
                continue
            if not tenant.is_dir():
                continue

            project_dir = tenant / str(project_id)
            if not project_dir.is_dir():
                continue

            archive_path = self._find_archive(project_dir)
            if archive_path is not None:
                logger.info(f"Found uploaded archive at: {archive_path}")
                return archive_path

            logger.debug(f"No archive in {project_dir}, continuing search")

        raise ArchiveNotFound(str(project_id), str(root))

    def _find_archive(self, project_dir: Path) -> Optional[Path]:
        """Return the first archive file in a directory, by name."""
        for entry in sorted(project_dir.iterdir(), key=lambda p: p.name):
            if not entry.is_file():
                continue
            if entry.name.lower().endswith(ARCHIVE_SUFFIXES):
                return entry
        return None


class ArchiveExtractor:
    """
    Safely unpacks ZIP and TAR+GZIP archives.

    Only directories and regular files are materialized. Every entry is
    checked against the cleaned destination root before anything is
    written for it.
    """

    def __init__(self, config: ArchiveConfig = None):
        self.config = config or ArchiveConfig()

    def extract(
        self,
        source: ArchiveSource,
        destination: Union[str, Path],
        archive_format: Optional[ArchiveFormat] = None,
    ) -> ExtractionReport:
        """
        Extract an archive into a destination directory.

        Args:
            source: Archive path, or a seekable binary stream.
            destination: Directory to extract into; created if missing.
            archive_format: Format override. Detected from the source's
                filename when omitted.

        Returns:
            ExtractionReport describing what was written.

        Raises:
            UnsupportedFormat: If the format cannot be determined.
            IllegalPath: If an entry would escape the destination.
            CorruptArchive: If the container cannot be decoded.
        """
        if archive_format is None:
            archive_format = detect_format(self._source_name(source))

        dest_root = Path(os.path.abspath(os.path.normpath(str(destination))))
        logger.info(f"Extracting {archive_format.value} archive to: {dest_root}")

        if archive_format is ArchiveFormat.ZIP:
            report = self._extract_zip(source, dest_root)
        else:
            report = self._extract_tar_gz(source, dest_root)

        logger.info(
            f"Successfully extracted {archive_format.value} archive: "
            f"{report.files_written} files"
        )
        return report

    def _extract_zip(self, source: ArchiveSource, dest_root: Path) -> ExtractionReport:
        """Extract a ZIP archive. The central directory is read first."""
        if isinstance(source, Path):
            source = str(source)

        try:
            archive = zipfile.ZipFile(source)
        except ZIP_DECODE_ERRORS as e:
            raise CorruptArchive(
                f"Failed to open zip archive: {e}",
                details={"destination": str(dest_root)},
            ) from e

        with archive:
            members = archive.infolist()
            report = ExtractionReport(
                archive_format=ArchiveFormat.ZIP,
                destination=dest_root,
                strip_prefix=detect_strip_prefix(m.filename for m in members),
            )
            self._ensure_directory(dest_root)

            for member in members:
                is_dir = member.is_dir()
                target = self._target_for(
                    member.filename, report.strip_prefix, dest_root, is_dir
                )
                if target is None:
                    continue

                if is_dir:
                    self._make_directory(target, report)
                    continue

                # Archivers that do not record a file type leave S_IFMT empty
                mode = member.external_attr >> 16
                if stat.S_IFMT(mode) and not stat.S_ISREG(mode):
                    logger.debug(f"Skipping non-regular entry: {member.filename}")
                    report.entries_skipped += 1
                    continue

                details = {
                    "entry": member.filename,
                    "files_written": report.files_written,
                }
                try:
                    with archive.open(member) as src:
                        self._write_file(src, target, stat.S_IMODE(mode), dest_root)
                except ZIP_DECODE_ERRORS as e:
                    raise CorruptArchive(
                        f"Failed to read zip entry {member.filename}: {e}",
                        details=details,
                    ) from e
                except RuntimeError as e:
                    # zipfile reports password-protected members this way
                    raise CorruptArchive(
                        f"Cannot read encrypted zip entry {member.filename}",
                        details=details,
                    ) from e
                except NotImplementedError as e:
                    raise CorruptArchive(
                        f"Unsupported compression for zip entry {member.filename}: {e}",
                        details=details,
                    ) from e
                report.files_written += 1

        return report

    def _extract_tar_gz(self, source: ArchiveSource, dest_root: Path) -> ExtractionReport:
        """
        Extract a TAR+GZIP archive in two streaming passes.

        The first pass only collects names to find the strip-prefix.
        Corruption discovered in the second pass leaves earlier files
        on disk.
        """
        try:
            with self._open_tar_stream(source) as tar:
                names = [self._tar_entry_name(member) for member in tar]
        except TAR_DECODE_ERRORS as e:
            raise CorruptArchive(
                f"Failed to read tar.gz archive: {e}",
                details={"destination": str(dest_root)},
            ) from e

        report = ExtractionReport(
            archive_format=ArchiveFormat.TAR_GZ,
            destination=dest_root,
            strip_prefix=detect_strip_prefix(names),
        )
        self._ensure_directory(dest_root)

        try:
            with self._open_tar_stream(source) as tar:
                for member in tar:
                    target = self._target_for(
                        self._tar_entry_name(member),
                        report.strip_prefix,
                        dest_root,
                        member.isdir(),
                    )
                    if target is None:
                        continue

                    if member.isdir():
                        self._make_directory(target, report)
                    elif member.isreg():
                        src = tar.extractfile(member)
                        self._write_file(
                            src, target, stat.S_IMODE(member.mode), dest_root
                        )
                        report.files_written += 1
                    else:
                        logger.debug(f"Skipping non-regular entry: {member.name}")
                        report.entries_skipped += 1
        except TAR_DECODE_ERRORS as e:
            raise CorruptArchive(
                f"Failed to read tar.gz entry: {e} "
                f"({report.files_written} files already written)",
                details={
                    "destination": str(dest_root),
                    "files_written": report.files_written,
                },
            ) from e

        return report

    @staticmethod
    def _open_tar_stream(source: ArchiveSource) -> tarfile.TarFile:
        if isinstance(source, (str, Path)):
            return tarfile.open(name=str(source), mode="r|gz")
        source.seek(0)
        return tarfile.open(fileobj=source, mode="r|gz")

    @staticmethod
    def _tar_entry_name(member: tarfile.TarInfo) -> str:
        # tarfile drops the trailing slash of directory names
        if member.isdir():
            return member.name.rstrip("/") + "/"
        return member.name

    @staticmethod
    def _source_name(source: ArchiveSource) -> str:
        if isinstance(source, (str, Path)):
            return str(source)
        name = getattr(source, "name", None)
        if isinstance(name, str):
            return name
        raise UnsupportedFormat("<stream>")

    @staticmethod
    def _target_for(
        entry_name: str,
        strip_prefix: Optional[str],
        dest_root: Path,
        is_dir: bool,
    ) -> Optional[Path]:
        """
        Map an entry name onto the destination.

        Returns None for the root directory marker.

        Raises:
            IllegalPath: If the entry resolves outside the destination.
        """
        relative = entry_name
        if strip_prefix and relative.startswith(strip_prefix):
            relative = relative[len(strip_prefix):]
            if not relative:
                return None

        root = str(dest_root)
        target = os.path.normpath(os.path.join(root, relative))

        if target == root and is_dir:
            return None

        if not target.startswith(root + os.sep):
            raise IllegalPath(entry_name, root)

        return Path(target)

    def _ensure_directory(self, path: Path) -> None:
        os.makedirs(path, mode=self.config.directory_mode, exist_ok=True)

    @staticmethod
    def _clear_parents(target: Path, dest_root: Path) -> None:
        """
        Remove files and links standing where target's parent directories go.

        A previous extraction may have left a file under a name that is a
        directory in this archive. Only paths below dest_root are touched.
        """
        current = dest_root
        for part in target.relative_to(dest_root).parts[:-1]:
            current = current / part
            if current.is_symlink() or (current.exists() and not current.is_dir()):
                current.unlink()

    def _make_directory(self, target: Path, report: ExtractionReport) -> None:
        self._clear_parents(target, report.destination)
        if target.is_symlink() or (target.exists() and not target.is_dir()):
            target.unlink()
        self._ensure_directory(target)
        report.directories_created += 1

    def _write_file(self, src: BinaryIO, target: Path, mode: int, dest_root: Path) -> None:
        """Stream an entry's content into a freshly created file."""
        self._clear_parents(target, dest_root)
        self._ensure_directory(target.parent)

        # Never write through a stale file, link or directory left by a previous run
        if target.is_symlink():
            target.unlink()
        elif target.is_dir():
            shutil.rmtree(target)
        elif target.exists():
            target.unlink()

        with open(target, "wb") as out:
            shutil.copyfileobj(src, out)

        if not mode:
            mode = self.config.default_file_mode
        os.chmod(target, mode & ~(stat.S_ISUID | stat.S_ISGID))


def list_entries(source: Union[str, Path]) -> List[str]:
    """
    List entry names of an archive without extracting it.

    Directory entries carry a trailing ``/``.
    """
    archive_format = detect_format(str(source))
    if archive_format is ArchiveFormat.ZIP:
        try:
            with zipfile.ZipFile(str(source)) as archive:
                return archive.namelist()
        except ZIP_DECODE_ERRORS as e:
            raise CorruptArchive(f"Failed to open zip archive: {e}") from e

    try:
        with ArchiveExtractor._open_tar_stream(source) as tar:
            return [ArchiveExtractor._tar_entry_name(member) for member in tar]
    except TAR_DECODE_ERRORS as e:
        raise CorruptArchive(f"Failed to read tar.gz archive: {e}") from e
