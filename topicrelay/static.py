"""Static file serving for the single-page application bundle."""
from __future__ import annotations

import logging
import os
import pathlib
import urllib.parse
from typing import NamedTuple

logger = logging.getLogger(__name__)

MIME_TYPES = {
    '.html': 'text/html',
    '.js': 'application/javascript',
    '.css': 'text/css',
    '.json': 'application/json',
    '.png': 'image/png',
    '.jpg': 'image/jpeg',
    '.svg': 'image/svg+xml',
    '.ico': 'image/x-icon',
    '.woff': 'font/woff',
    '.woff2': 'font/woff2',
    '.webmanifest': 'application/manifest+json',
}
"""Content types by file extension."""
DEFAULT_MIME_TYPE = 'application/octet-stream'


class StaticResponse(NamedTuple):
    """Response produced by the static content server."""

    status: int
    content_type: str
    body: bytes


def content_type(path: str | pathlib.Path) -> str:
    """Get the content type of a file from its extension."""
    return MIME_TYPES.get(pathlib.PurePath(path).suffix, DEFAULT_MIME_TYPE)


class StaticContentServer:
    """Serve files from a directory with single-page-app fallback.

    Request paths that do not name an existing file, or that have no file
    extension and so are treated as application routes, resolve to the
    entry document. Read failures of any kind are treated like a missing
    file.

    Args:
        root: Directory containing the built application.
        index: Entry document, relative to `root`.
    """

    def __init__(
        self,
        root: str | pathlib.Path,
        index: str = 'index.html',
    ) -> None:
        self.root = pathlib.Path(root).resolve()
        self.index = self.root / index

    def resolve(self, path: str) -> pathlib.Path:
        """Resolve a request path to a file in the root directory.

        Args:
            path: Request target, optionally with a query string.

        Returns:
            Path of the file to serve. Falls back to the entry document.
        """
        url_path = urllib.parse.unquote(urllib.parse.urlsplit(path).path)
        relative = url_path.lstrip('/')
        if relative == '':
            return self.index

        candidate = pathlib.Path(
            os.path.normpath(os.path.join(self.root, relative)),
        )
        if (
            self.root not in candidate.parents
            or candidate.suffix == ''
            or not candidate.is_file()
        ):
            return self.index
        return candidate

    def load(self, path: str) -> StaticResponse:
        """Read the file to serve for a request path.

        Note:
            This performs blocking file I/O. Callers on an event loop should
            run it in a worker thread.

        Args:
            path: Request target, optionally with a query string.

        Returns:
            The file contents with status 200, or a plain text 404 response \
            if not even the entry document can be read.
        """
        filepath = self.resolve(path)
        body = self._read(filepath)
        if body is None and filepath != self.index:
            filepath = self.index
            body = self._read(filepath)

        if body is None:
            return StaticResponse(404, 'text/plain', b'Not found')
        return StaticResponse(200, content_type(filepath), body)

    def _read(self, filepath: pathlib.Path) -> bytes | None:
        try:
            return filepath.read_bytes()
        except OSError as e:
            logger.warning(f'Failed to read {filepath}: {e}')
            return None
