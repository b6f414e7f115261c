"""Fetch buildpack blobs from local paths, ``file://`` URIs, or http(s)."""

from __future__ import annotations

import io
import logging
import tarfile
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import requests

from packsmith.core.errors import ErrorKind, FetchError, symbol
from packsmith.core.layers import NORMALIZED_MTIME
from packsmith.core.paths import is_uri, uri_to_file_path

logger = logging.getLogger(__name__)


def _normalize(info: tarfile.TarInfo) -> tarfile.TarInfo:
    info.uid = info.gid = 0
    info.uname = info.gname = ""
    info.mtime = NORMALIZED_MTIME
    return info


def directory_to_tar(path: Path) -> bytes:
    """Tar the contents of *path*, rooted at the archive root."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w", format=tarfile.PAX_FORMAT) as tar:
        tar.add(path, arcname=".", filter=_normalize)
    return buffer.getvalue()


class Downloader:
    """Blob downloader used for buildpacks given as paths or URIs.

    Parameters
    ----------
    timeout:
        Seconds to wait on an http(s) response.
    session:
        Optional ``requests.Session`` (for connection reuse or testing).
        An injected session is left open by ``close``; the caller owns it.
    """

    def __init__(self, timeout: float = 60.0, session: requests.Session | None = None) -> None:
        self._timeout = timeout
        self._owns_session = session is None
        self._session = session or requests.Session()

    def close(self) -> None:
        """Close the http session if this downloader created it."""
        if self._owns_session:
            self._session.close()

    def __enter__(self) -> Downloader:
        return self

    def __exit__(self, *exc: Any) -> None:
        self.close()

    def download(self, location: str) -> bytes:
        """Return the blob at *location*.

        Directories are returned as an uncompressed tar of their contents.
        Raises ``FetchError(DOWNLOAD_FAILED)`` naming the location.
        """
        if not is_uri(location):
            return self._read_local(Path(location), location)

        scheme = urlparse(location).scheme
        if scheme == "file":
            return self._read_local(uri_to_file_path(location), location)
        if scheme in ("http", "https"):
            return self._fetch_remote(location)
        raise FetchError(
            ErrorKind.DOWNLOAD_FAILED,
            f"unsupported protocol {symbol(scheme)} in {symbol(location)}",
            reference=location,
        )

    def _read_local(self, path: Path, location: str) -> bytes:
        try:
            if path.is_dir():
                logger.debug("Archiving directory %s", path)
                return directory_to_tar(path)
            return path.read_bytes()
        except (OSError, tarfile.TarError) as exc:
            raise FetchError(
                ErrorKind.DOWNLOAD_FAILED,
                f"reading {symbol(location)}: {exc}",
                reference=location,
            ) from exc

    def _fetch_remote(self, location: str) -> bytes:
        logger.debug("Downloading %s", location)
        try:
            response = self._session.get(location, timeout=self._timeout)
            response.raise_for_status()
        except requests.RequestException as exc:
            raise FetchError(
                ErrorKind.DOWNLOAD_FAILED,
                f"downloading {symbol(location)}: {exc}",
                reference=location,
            ) from exc
        return response.content
