"""Read OpenAPI documents into plain dictionaries.

A root document may come from a local path, an http(s) URL or stdin
(``-``). Documents it references are always local files and are read
through a :class:`DocumentCache`, so each one is parsed once per
generation run. JSON and YAML are both accepted: the format comes from
the file suffix or the response ``Content-Type`` when either names one,
and is sniffed (JSON first) otherwise.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml

from specdispatch.exceptions import SpecParseError


logger = logging.getLogger(__name__)

STDIN = "-"
FETCH_TIMEOUT = 30.0

_SUFFIX_FORMATS = {".json": "json", ".yaml": "yaml", ".yml": "yaml"}


def load_spec(source: str) -> dict[str, Any]:
    """Load the root document named by *source*.

    Args:
        source: A local path, an ``http://`` or ``https://`` URL, or ``-``
            for stdin.

    Raises:
        SpecParseError: If the document cannot be read or is not a mapping.
    """
    if source == STDIN:
        origin, fmt = "<stdin>", None
        try:
            text = sys.stdin.read()
        except OSError as exc:
            raise SpecParseError(f"Failed to read {origin}: {exc}") from exc
    elif source.startswith(("http://", "https://")):
        origin = source
        text, fmt = _fetch(source)
    else:
        return load_document(source)

    if not text.strip():
        raise SpecParseError(f"No input received from {origin}")
    return parse_document(text, origin, fmt)


def _fetch(url: str) -> tuple[str, Optional[str]]:
    logger.debug("Fetching %s", url)
    try:
        response = httpx.get(url, timeout=FETCH_TIMEOUT, follow_redirects=True)
        response.raise_for_status()
    except httpx.HTTPStatusError as exc:
        raise SpecParseError(f"HTTP {exc.response.status_code} from {url}") from exc
    except httpx.RequestError as exc:
        raise SpecParseError(f"Failed to fetch {url}: {exc}") from exc

    media_type = response.headers.get("content-type", "")
    if "json" in media_type:
        return response.text, "json"
    if "yaml" in media_type:
        return response.text, "yaml"
    return response.text, None


def load_document(path: str | Path) -> dict[str, Any]:
    """Load one local document.

    No OpenAPI version check happens here: referenced documents are often
    fragments such as a bare ``schemas:`` mapping.

    Raises:
        SpecParseError: If the file is missing, empty, unreadable or not a
            mapping. The message names the file.
    """
    path = Path(path)
    if not path.is_file():
        raise SpecParseError(f"Spec file not found: {path}")
    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise SpecParseError(f"Failed to read {path}: {exc}") from exc
    if not text.strip():
        raise SpecParseError(f"Spec file is empty: {path}")
    return parse_document(text, str(path), _SUFFIX_FORMATS.get(path.suffix.lower()))


def parse_document(text: str, origin: str, fmt: Optional[str] = None) -> dict[str, Any]:
    """Parse *text* and require a mapping at the top level.

    Args:
        text: Raw document text.
        origin: Where the text came from, used as the prefix of error messages.
        fmt: ``"json"`` or ``"yaml"`` to pin the format. Without it JSON is
            tried first and YAML second.
    """
    if fmt == "yaml":
        document = _parse_yaml(text, origin)
    else:
        try:
            document = json.loads(text)
        except json.JSONDecodeError as exc:
            if fmt == "json":
                raise SpecParseError(f"{origin}: invalid JSON: {exc}") from exc
            document = _parse_yaml(text, origin)

    if not isinstance(document, dict):
        kind = "an empty document" if document is None else f"a {type(document).__name__}"
        raise SpecParseError(f"{origin}: expected a mapping at the top level, got {kind}")
    return document


def _parse_yaml(text: str, origin: str) -> Any:
    try:
        return yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise SpecParseError(f"{origin}: cannot parse as YAML: {exc}") from exc


def validate_openapi_version(document: dict[str, Any]) -> str:
    """Return the root document's ``openapi`` version, accepting 3.x only.

    Raises:
        SpecParseError: For Swagger 2 documents, a missing ``openapi`` field
            or any major version other than 3.
    """
    if "swagger" in document:
        raise SpecParseError(
            f"Swagger {document['swagger']} documents are not supported; "
            "convert the document to OpenAPI 3 first"
        )
    version = document.get("openapi")
    if version is None:
        raise SpecParseError("Missing 'openapi' field; not an OpenAPI 3 document")
    version = str(version)
    if not version.startswith("3."):
        raise SpecParseError(f"Unsupported OpenAPI version {version}; expected 3.x")
    return version


class DocumentCache:
    """Documents loaded during one generation run, keyed by canonical path.

    Each path is read from disk at most once. The cache is created by the
    generation run and passed explicitly to the reference resolver; it is
    never shared between runs.

    Example::

        cache = DocumentCache()
        cache.add(Path("openapi.yaml"), root)   # seed with the root document
        bar = cache.get(Path("bar.yaml"))       # loaded on first access
    """

    def __init__(self) -> None:
        self._documents: dict[Path, dict[str, Any]] = {}

    @staticmethod
    def canonical(path: str | Path) -> Path:
        return Path(path).resolve()

    def add(self, path: str | Path, document: dict[str, Any]) -> Path:
        """Register an already-loaded document and return its canonical path."""
        key = self.canonical(path)
        self._documents[key] = document
        return key

    def get(self, path: str | Path) -> dict[str, Any]:
        """Return the document at *path*, loading it on first access."""
        key = self.canonical(path)
        document = self._documents.get(key)
        if document is None:
            logger.debug("Loading referenced document %s", key)
            document = load_document(key)
            self._documents[key] = document
        return document

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return self.canonical(path) in self._documents

    def __len__(self) -> int:
        return len(self._documents)
