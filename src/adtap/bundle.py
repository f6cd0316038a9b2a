"""Creative bundle loading.

PUBLIC API:
  - CreativeBundle: Files of one creative plus its primary document
  - AdSize: Declared creative dimensions
  - load_bundle: Load a bundle from a zip archive or a directory
  - find_primary: Pick the primary HTML document of a bundle
"""

import logging
import re
import zipfile
from dataclasses import dataclass, field
from pathlib import Path

from adtap.monitor.assets import AssetTable

logger = logging.getLogger(__name__)

_IGNORED = re.compile(r"(^|/)(__MACOSX|\.DS_Store|Thumbs\.db)(/|$)")
_META_SIZE = re.compile(
    r"<meta[^>]+name=[\"']ad\.size[\"'][^>]*content=[\"'][^\"']*?width\s*=\s*(\d+)\s*,?\s*height\s*=\s*(\d+)",
    re.IGNORECASE,
)
_FOLDER_SIZE = re.compile(r"(?:/|^)(\d{2,4})\s*x\s*(\d{2,4})(?:/|$)", re.IGNORECASE)


@dataclass
class AdSize:
    width: int
    height: int
    source: str  # meta | folder


@dataclass
class CreativeBundle:
    """All files of a creative, keyed by bundle path.

    Attributes:
        name: Archive or directory name.
        files: Bundle path -> content.
        primary_path: Bundle path of the document to load.
    """

    name: str
    files: dict[str, bytes] = field(default_factory=dict)
    primary_path: str = ""

    @property
    def total_bytes(self) -> int:
        return sum(len(data) for data in self.files.values())

    def asset_table(self, handle_base: str | None = None) -> AssetTable:
        return AssetTable(self.primary_path, self.files, handle_base)

    def ad_size(self) -> AdSize | None:
        """Size from the ad.size meta tag, else from a WxH folder name."""
        html = self.files.get(self.primary_path, b"").decode("utf-8", errors="replace")
        if match := _META_SIZE.search(html):
            width, height = int(match.group(1)), int(match.group(2))
            if width > 0 and height > 0:
                return AdSize(width, height, "meta")
        if match := _FOLDER_SIZE.search(f"{self.name}/{self.primary_path}"):
            return AdSize(int(match.group(1)), int(match.group(2)), "folder")
        return None


def find_primary(paths: list[str]) -> str | None:
    """index.html nearest the root, else the shallowest .html/.htm file."""
    html = [p for p in paths if p.lower().endswith((".html", ".htm"))]
    if not html:
        return None

    def depth(path: str) -> tuple[int, str]:
        return (path.count("/"), path)

    index = [p for p in html if p.lower().rsplit("/", 1)[-1] == "index.html"]
    return min(index or html, key=depth)


def _normalize(name: str) -> str:
    return name.replace("\\", "/").lstrip("/")


def load_bundle(source: str | Path) -> CreativeBundle:
    """Load a creative from a .zip archive or a directory.

    Raises:
        FileNotFoundError: If source does not exist.
        ValueError: If the bundle contains no HTML document.
    """
    path = Path(source)
    if not path.exists():
        raise FileNotFoundError(f"Bundle not found: {path}")

    files: dict[str, bytes] = {}
    if path.is_dir():
        for file in sorted(path.rglob("*")):
            if file.is_file():
                rel = file.relative_to(path).as_posix()
                if not _IGNORED.search(rel):
                    files[rel] = file.read_bytes()
    else:
        with zipfile.ZipFile(path) as archive:
            for info in archive.infolist():
                name = _normalize(info.filename)
                if info.is_dir() or not name or _IGNORED.search(name):
                    continue
                files[name] = archive.read(info)

    primary = find_primary(list(files))
    if primary is None:
        raise ValueError(f"No HTML document in bundle {path.name}")

    logger.info(f"Loaded bundle {path.name}: {len(files)} files, primary {primary}")
    return CreativeBundle(name=path.stem if path.is_file() else path.name, files=files, primary_path=primary)
