"""Package download and extraction into a staging tree.

The versioning service treats the fetcher as a black box that fills a
directory and reports warnings. :class:`HttpPackageFetcher` is the production
implementation: it downloads the published ZIP with separate connect/read
timeouts, validates it, and maps selected archive entries into the tree.

Mapping rules:
* Patterns are matched against the entry's path inside the archive. ``*``
    and ``?`` stay inside one path segment; ``**`` crosses directories.
* The *anchor* of a pattern is its last wildcard-free segment
    (``**/xsd/**/*.xsd`` → ``xsd``). The sub-path after the anchor is kept
    under the mapping's target directory; without an anchor only the file
    name is kept.

Example:
        from pathlib import Path
        from validation_assets.fetcher import HttpPackageFetcher
        from validation_assets.packages import DEFAULT_PACKAGES

        fetcher = HttpPackageFetcher(connect_timeout_ms=5000, read_timeout_ms=30000)
        result = fetcher.fetch(DEFAULT_PACKAGES[0], Path("/tmp/efatura"))
        print(result.files, result.warnings)

Notes:
* Entry names are decoded the way :mod:`zipfile` does (CP437 unless the
    UTF-8 flag is set), which keeps Turkish file names in upstream archives
    readable.
* Entries whose normalized path would escape the extraction directory are
    skipped and reported as warnings.
"""

from __future__ import annotations

import io
import logging
import re
import shutil
import time
import zipfile
import zlib
from functools import lru_cache
from pathlib import Path, PurePosixPath
from typing import List, Optional, Pattern, Protocol, Tuple
from urllib.parse import urlsplit

import httpx

from .errors import AssetIOError
from .models import FetchResult, PackageDefinition

logger = logging.getLogger(__name__)

ZIP_MAGIC = b"PK\x03\x04"
MAX_DOWNLOAD_BYTES = 200 * 1024 * 1024
DEFAULT_CONNECT_TIMEOUT_MS = 10_000
DEFAULT_READ_TIMEOUT_MS = 60_000


class PackageFetcher(Protocol):
    """Produces a package tree inside ``target_dir``; raises AssetIOError."""

    def fetch(self, package: PackageDefinition, target_dir: Path) -> FetchResult:
        ...


class DisabledFetcher:
    """Fetcher used when package sync is switched off by configuration."""

    def fetch(self, package: PackageDefinition, target_dir: Path) -> FetchResult:
        raise AssetIOError(f"Package sync is disabled; cannot fetch {package.id}", package.id)


@lru_cache(maxsize=64)
def glob_to_regex(pattern: str) -> Pattern[str]:
    """Translate a path glob into a compiled, fully anchored regex."""
    out = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch == "*":
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif ch == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(ch))
        i += 1
    return re.compile("".join(out))


def find_anchor(pattern: str) -> Optional[str]:
    """Return the last wildcard-free directory segment of ``pattern``."""
    parts = pattern.split("/")
    for part in reversed(parts[:-1]):
        if part and "*" not in part and "?" not in part:
            return part
    return None


def relative_target(entry_path: str, anchor: Optional[str]) -> PurePosixPath:
    """Sub-path of ``entry_path`` after the first ``anchor`` segment."""
    parts = PurePosixPath(entry_path).parts
    if anchor is not None:
        for i, part in enumerate(parts[:-1]):
            if part == anchor:
                return PurePosixPath(*parts[i + 1 :])
    return PurePosixPath(parts[-1])


def apply_base_url_override(url: str, base_url_override: Optional[str]) -> str:
    """Replace scheme and host of ``url`` with ``base_url_override``."""
    if not base_url_override or not base_url_override.strip():
        return url
    parts = urlsplit(url)
    effective = base_url_override.strip().rstrip("/") + (parts.path or "/")
    if parts.query:
        effective += "?" + parts.query
    return effective


def _safe_entry_path(name: str) -> Optional[PurePosixPath]:
    """Normalize an archive entry name; ``None`` if it escapes the root."""
    normalized: List[str] = []
    for part in name.replace("\\", "/").split("/"):
        if part in ("", "."):
            continue
        if part == "..":
            if not normalized:
                return None
            normalized.pop()
            continue
        normalized.append(part)
    if not normalized or name.startswith("/") or re.match(r"^[A-Za-z]:", name):
        return None
    return PurePosixPath(*normalized)


def extract_package(
    data: bytes, package: PackageDefinition, target_dir: Path
) -> Tuple[List[str], List[str]]:
    """Map matching archive entries into ``target_dir``.

    Returns:
        ``(files, warnings)`` where ``files`` are ``/``-separated paths
        relative to ``target_dir``.
    """
    files: List[str] = []
    warnings: List[str] = []

    try:
        archive = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as e:
        raise AssetIOError(f"Downloaded archive for {package.id} is corrupt: {e}", package.id)

    with archive:
        entries: List[Tuple[zipfile.ZipInfo, PurePosixPath]] = []
        for info in archive.infolist():
            if info.is_dir():
                continue
            safe = _safe_entry_path(info.filename)
            if safe is None:
                logger.warning(f"Skipping archive entry outside extraction root: {info.filename}")
                warnings.append(f"Skipped unsafe archive entry: {info.filename}")
                continue
            entries.append((info, safe))

        for mapping in package.file_mapping:
            regex = glob_to_regex(mapping.zip_path_pattern)
            anchor = find_anchor(mapping.zip_path_pattern)
            matched = 0
            for info, entry_path in entries:
                if not regex.fullmatch(entry_path.as_posix()):
                    continue
                rel = PurePosixPath(mapping.target_dir) / relative_target(
                    entry_path.as_posix(), anchor
                )
                destination = target_dir.joinpath(*rel.parts)
                destination.parent.mkdir(parents=True, exist_ok=True)
                with archive.open(info) as src, open(destination, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                files.append(rel.as_posix())
                matched += 1
            logger.info(f"Pattern '{mapping.zip_path_pattern}' matched {matched} file(s)")
            if matched == 0:
                warnings.append(
                    f"Pattern '{mapping.zip_path_pattern}' matched no files in the {package.id} archive"
                )

    return sorted(set(files)), warnings


class HttpPackageFetcher:
    """Download published package archives over HTTP(S) with httpx.

    Args:
        connect_timeout_ms: Connection establishment timeout.
        read_timeout_ms: Socket read timeout for the download.
        base_url_override: Replaces scheme/host of every package URL (mirrors,
            tests).
        client: Preconfigured :class:`httpx.Client` (e.g. with a
            ``MockTransport``); created lazily when omitted.
        max_download_bytes: Upper bound on the archive size.
    """

    def __init__(
        self,
        connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS,
        read_timeout_ms: int = DEFAULT_READ_TIMEOUT_MS,
        base_url_override: Optional[str] = None,
        client: Optional[httpx.Client] = None,
        max_download_bytes: int = MAX_DOWNLOAD_BYTES,
    ):
        self.connect_timeout_ms = connect_timeout_ms
        self.read_timeout_ms = read_timeout_ms
        self.base_url_override = base_url_override
        self.max_download_bytes = max_download_bytes
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            timeout = httpx.Timeout(
                self.read_timeout_ms / 1000.0,
                connect=self.connect_timeout_ms / 1000.0,
            )
            self._client = httpx.Client(timeout=timeout, follow_redirects=True)
        return self._client

    def download(self, package: PackageDefinition) -> bytes:
        """Download and validate the package archive.

        Raises:
            AssetIOError: Network error, non-200 status, oversized body or a
                body that is not a ZIP archive.
        """
        url = apply_base_url_override(package.download_url, self.base_url_override)
        logger.info(f"Downloading package {package.id} from {url}")
        try:
            response = self._get_client().get(url)
        except httpx.HTTPError as e:
            raise AssetIOError(f"Download of {package.id} failed: {e}", package.id)

        if response.status_code != 200:
            raise AssetIOError(
                f"HTTP {response.status_code} downloading {package.id} from {url}", package.id
            )
        data = response.content
        if len(data) > self.max_download_bytes:
            raise AssetIOError(
                f"Archive for {package.id} is {len(data) // (1024 * 1024)} MB "
                f"(max {self.max_download_bytes // (1024 * 1024)} MB)",
                package.id,
            )
        if not data.startswith(ZIP_MAGIC):
            raise AssetIOError(f"Download for {package.id} is not a ZIP archive", package.id)
        return data

    def fetch(self, package: PackageDefinition, target_dir: Path) -> FetchResult:
        start = time.time()
        data = self.download(package)
        try:
            files, warnings = extract_package(data, package, target_dir)
        except (OSError, zipfile.BadZipFile, zlib.error, EOFError) as e:
            raise AssetIOError(f"Extraction of {package.id} failed: {e}", package.id)
        duration_ms = int((time.time() - start) * 1000)
        logger.info(f"Fetched {package.id}: {len(files)} files in {duration_ms} ms")
        return FetchResult(files=files, warnings=warnings, duration_ms=duration_ms)

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
