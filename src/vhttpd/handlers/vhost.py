"""
=============================================================================
VIRTUAL HOST RESOLUTION
=============================================================================

Maps (Host header, request target) to a file inside that host's document
root.

    virtual_hosts = {
        "a.com": "/srv/a",
        "b.org": "/srv/b",
    }

    GET /docs/ HTTP/1.1        Host: a.com
        │
        ├── 1. host lookup           a.com → /srv/a
        ├── 2. trailing "/"          /docs/ → /docs/index.html
        ├── 3. clean + join          /srv/a/docs/index.html
        ├── 4. stat                  regular file? serve it
        └── 5. directory?            append /index.html, clean, stat again

=============================================================================
THE TWO-STAGE INDEX RULE
=============================================================================

The index file is appended at two different points:

    /docs/   → trailing slash, index.html appended BEFORE the first stat
    /docs    → no trailing slash; first stat finds a directory, so
               /index.html is appended AFTER it and stat runs once more

Both URLs end up serving /srv/a/docs/index.html. If the second stat fails
there is no third attempt; the result is a 404.

=============================================================================
PATH TRAVERSAL
=============================================================================

Every target is lexically cleaned before it touches the filesystem:

    /../../etc/passwd     → /etc/passwd       → /srv/a/etc/passwd
    /a/./b//c/../d        → /a/b/d            → /srv/a/a/b/d

A cleaned absolute path has no ".." left that could climb above "/", so
joining it under the document root can never leave the document root.
Targets are rooted with a leading "/" before cleaning, so this holds for
relative targets passed to resolve() directly as well:

    ../secret.txt         → /secret.txt       → /srv/a/secret.txt

=============================================================================
"""

import logging
import os
import posixpath
import stat
from dataclasses import dataclass
from typing import Mapping

from ..http.errors import ResolutionError
from ..http.request import Request
from ..http.response import Response, not_found, ok


logger = logging.getLogger(__name__)

INDEX_FILE = "index.html"


@dataclass(frozen=True)
class ResolvedFile:
    """A file ready to be served, with the metadata its headers need."""

    path: str          # absolute filesystem path
    size: int          # bytes
    modified: float    # POSIX mtime


def clean_path(path: str) -> str:
    """
    Lexically clean a slash-separated path.

    Collapses ".", ".." and repeated separators. The result of cleaning an
    absolute path is absolute and never starts with "..":

        >>> clean_path("/a/../../b//c/.")
        '/b/c'
        >>> clean_path("//x")
        '/x'
    """
    cleaned = posixpath.normpath(path)
    if cleaned.startswith("//"):
        # POSIX allows exactly two leading slashes to mean something special
        cleaned = "/" + cleaned.lstrip("/")
    return cleaned


class VirtualHostResolver:
    """
    Resolves requests against a read-only host → document root table.

    The table is copied and every root made absolute at construction, so
    one resolver can be shared by all connection threads without locking.

    Usage:

        resolver = VirtualHostResolver({"a.com": "/srv/a"})
        resolved = resolver.resolve("a.com", "/")      # ResolvedFile
        response = resolver.handle(request)            # Response
    """

    def __init__(self, virtual_hosts: Mapping[str, str]):
        self._doc_roots = {
            host: os.path.abspath(root) for host, root in virtual_hosts.items()
        }

    @property
    def hosts(self) -> list[str]:
        return sorted(self._doc_roots)

    def doc_root(self, host: str) -> str:
        """
        Document root for ``host``.

        Raises:
            ResolutionError: Host is empty or not configured.
        """
        try:
            return self._doc_roots[host]
        except KeyError:
            raise ResolutionError(f"unknown virtual host {host!r}", host=host) from None

    def resolve(self, host: str, target: str) -> ResolvedFile:
        """
        Map ``host`` and ``target`` to a file.

        Raises:
            ResolutionError: Unknown host, nothing at the path, or a
                             directory without an index file.
        """
        # ─────────────────────────────────────────────────────────────────
        # STEP 1: Which document root?
        # ─────────────────────────────────────────────────────────────────
        root = self.doc_root(host)

        # ─────────────────────────────────────────────────────────────────
        # STEP 2: URL-level index rule
        # ─────────────────────────────────────────────────────────────────
        if target.endswith("/"):
            target += INDEX_FILE

        # ─────────────────────────────────────────────────────────────────
        # STEP 3-4: Clean, join, stat
        # ─────────────────────────────────────────────────────────────────
        # rooted first, so a relative target cannot keep a leading ".."
        url_path = clean_path("/" + target)
        fs_path = self._join(root, url_path)
        st = self._stat(fs_path, host, target)

        # ─────────────────────────────────────────────────────────────────
        # STEP 5: Filesystem-level index rule (one more try, no further)
        # ─────────────────────────────────────────────────────────────────
        if stat.S_ISDIR(st.st_mode):
            url_path = clean_path(url_path + "/" + INDEX_FILE)
            fs_path = self._join(root, url_path)
            st = self._stat(fs_path, host, target)
            if stat.S_ISDIR(st.st_mode):
                raise ResolutionError(
                    f"index {fs_path} is a directory", host=host, target=target
                )

        # ─────────────────────────────────────────────────────────────────
        # STEP 6: Found it
        # ─────────────────────────────────────────────────────────────────
        return ResolvedFile(path=fs_path, size=st.st_size, modified=st.st_mtime)

    def handle(self, request: Request) -> Response:
        """Build the 200 or 404 response for a parsed request."""
        try:
            resolved = self.resolve(request.host, request.target)
        except ResolutionError as e:
            logger.debug(f"404 for {request.host!r} {request.target!r}: {e.reason}")
            return not_found(request)
        return ok(request, resolved)

    @staticmethod
    def _join(root: str, url_path: str) -> str:
        return os.path.join(root, *[part for part in url_path.split("/") if part])

    @staticmethod
    def _stat(fs_path: str, host: str, target: str) -> os.stat_result:
        try:
            return os.stat(fs_path)
        except (FileNotFoundError, NotADirectoryError, ValueError):
            # ValueError: embedded NUL byte in the target
            raise ResolutionError(
                f"{fs_path} does not exist", host=host, target=target
            ) from None
        except OSError as e:
            logger.warning(f"stat failed for {fs_path}: {e}")
            raise ResolutionError(
                f"cannot stat {fs_path}: {e.strerror}", host=host, target=target
            ) from e
