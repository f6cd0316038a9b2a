"""Asset resolution table for a creative bundle.

Maps the paths a creative declares (relative to its primary document) to
local handles the rendering context can load without real network access.

PUBLIC API:
  - AssetTable: Declared path -> local handle lookup and reference rewriting
  - resolve_local: Normalize a reference against the document it appears in
  - guess_mime: Content type for a bundle file name
"""

import logging
import re
import uuid
from typing import Mapping

logger = logging.getLogger(__name__)

_PASSTHROUGH = re.compile(r"^(?:[a-z][a-z0-9+.-]*:|//)", re.IGNORECASE)
_CSS_URL = re.compile(r"url\(([^)]+)\)", re.IGNORECASE)

_MIME_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".svg": "image/svg+xml",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".ogg": "video/ogg",
    ".mov": "video/quicktime",
    ".mp3": "audio/mpeg",
    ".wav": "audio/wav",
    ".m4a": "audio/mp4",
    ".css": "text/css",
    ".js": "text/javascript",
    ".json": "application/json",
    ".html": "text/html",
    ".htm": "text/html",
    ".woff": "font/woff",
    ".woff2": "font/woff2",
    ".ttf": "font/ttf",
}


def guess_mime(name: str) -> str:
    """Get content type from a file name, defaulting to octet-stream."""
    lowered = name.lower()
    for ext, mime in _MIME_TYPES.items():
        if lowered.endswith(ext):
            return mime
    return "application/octet-stream"


def resolve_local(from_path: str, url: str) -> str | None:
    """Resolve a reference to a bundle path.

    Args:
        from_path: Bundle path of the document containing the reference.
        url: Reference as written.

    Returns:
        Normalized bundle path, or None for references with a scheme
        (http, data, javascript, blob, ...) or protocol-relative URLs.
    """
    url = url.strip()
    if not url or _PASSTHROUGH.match(url):
        return None

    url = re.sub(r"[?#].*$", "", url)
    if url.startswith("/"):
        combined = url[1:]
    else:
        from_dir = "/".join(from_path.split("/")[:-1])
        combined = f"{from_dir}/{url}" if from_dir else url

    parts: list[str] = []
    for part in combined.split("/"):
        if not part or part == ".":
            continue
        if part == "..":
            if parts:
                parts.pop()
            continue
        parts.append(part)

    return "/".join(parts) or None


class AssetTable:
    """Declared path -> local handle map, built once per load.

    Lookups try the exact path first, then a case-insensitive match, since
    bundles are often zipped on case-insensitive filesystems.

    Attributes:
        primary_path: Bundle path of the primary document.
        entries: Bundle path -> local handle.
        sizes: Local handle -> byte length.
        revoked: True once the handles have been released.
    """

    def __init__(self, primary_path: str, files: Mapping[str, bytes], handle_base: str | None = None):
        """Build the table.

        Args:
            primary_path: Bundle path of the primary document.
            files: Bundle path -> file content.
            handle_base: Prefix for generated handles. Defaults to a unique
                https://adtap.invalid/<token>/ origin.
        """
        self.primary_path = primary_path
        self.handle_base = handle_base or f"https://adtap.invalid/{uuid.uuid4().hex[:12]}/"
        self.entries: dict[str, str] = {}
        self.sizes: dict[str, int] = {}
        self._content: dict[str, bytes] = {}
        self._lower: dict[str, str] = {}
        self.revoked = False

        for path, data in files.items():
            handle = self.handle_base + path
            self.entries[path] = handle
            self.sizes[handle] = len(data)
            self._content[handle] = data
            self._lower.setdefault(path.lower(), path)

    def __len__(self) -> int:
        return len(self.entries)

    def lookup(self, path: str) -> str | None:
        """Find the handle for a normalized bundle path."""
        if self.revoked:
            return None
        exact = path if path in self.entries else self._lower.get(path.lower())
        return self.entries.get(exact) if exact else None

    def resolve(self, declared: str, from_path: str | None = None) -> str | None:
        """Resolve a declared reference to its local handle.

        Args:
            declared: Reference as written by the creative.
            from_path: Document it appears in. Defaults to the primary document.

        Returns:
            Local handle, or None when the reference is external or unknown.
        """
        local = resolve_local(from_path or self.primary_path, declared)
        return self.lookup(local) if local else None

    def rewrite(self, value: str, from_path: str | None = None) -> str:
        """Return the local handle for a reference, or the reference unchanged."""
        return self.resolve(value, from_path) or value

    def rewrite_css(self, css: str, from_path: str | None = None) -> tuple[str, int]:
        """Replace every resolvable url(...) token.

        Returns:
            (rewritten text, number of replaced tokens)
        """
        count = 0

        def replace(match: re.Match) -> str:
            nonlocal count
            raw = match.group(1).strip().strip("'\"")
            handle = self.resolve(raw, from_path)
            if not handle:
                return match.group(0)
            count += 1
            return f"url({handle})"

        return _CSS_URL.sub(replace, css), count

    def rewrite_srcset(self, srcset: str, from_path: str | None = None) -> str:
        """Rewrite each candidate URL of a srcset attribute."""
        candidates = []
        for part in srcset.split(","):
            segment = part.strip()
            if not segment:
                continue
            url, _, descriptor = segment.partition(" ")
            handle = self.resolve(url, from_path)
            if handle:
                segment = f"{handle} {descriptor.strip()}".strip()
            candidates.append(segment)
        return ", ".join(candidates)

    def handle_path(self, handle: str) -> str | None:
        """Bundle path behind a handle-origin URL (query and fragment ignored)."""
        if not handle.startswith(self.handle_base):
            return None
        return re.sub(r"[?#].*$", "", handle[len(self.handle_base):])

    def content(self, handle: str) -> bytes | None:
        """File content for a handle, case-insensitively, or None if unknown."""
        path = self.handle_path(handle)
        if path is None:
            return None
        resolved = self.lookup(path)
        return self._content.get(resolved) if resolved else None

    def size_of(self, handle: str) -> int:
        """Byte length of the file served for a handle-origin URL, 0 if unknown."""
        path = self.handle_path(handle)
        resolved = self.lookup(path) if path is not None else None
        return self.sizes.get(resolved, 0) if resolved else 0

    def payload(self) -> dict:
        """Serializable form passed into the context at injection time."""
        return {"primaryPath": self.primary_path, "entries": dict(self.entries), "sizes": dict(self.sizes)}

    def revoke(self) -> None:
        """Release all handles. Later lookups resolve nothing."""
        if self.revoked:
            return
        logger.info(f"Revoking {len(self.entries)} asset handles under {self.handle_base}")
        self.revoked = True
        self._content.clear()
