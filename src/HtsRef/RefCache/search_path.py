# === NAVMAP v1 ===
# {
#   "module": "HtsRef.RefCache.search_path",
#   "purpose": "Tokenise REF_PATH style search paths into typed entries",
#   "sections": [
#     {"id": "entries", "name": "Search path entries", "anchor": "ENT", "kind": "api"},
#     {"id": "tokenizer", "name": "Tokenizer", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Search-path tokenisation.

A search path is a list of directories and URL templates joined by the
platform path separator, e.g. ``/data/refs/%s:http://host:8080/md5/%s``.  URLs
contain colons of their own, so entries that start with a recognised scheme
keep the ``scheme:`` and ``host:port`` colons instead of splitting on them.
A doubled separator (``::``) stands for one literal separator character.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Union

__all__ = [
    "IMPLICIT_FALLBACK_ENTRY",
    "FtpUrl",
    "HttpUrl",
    "LocalDirectory",
    "SearchPathEntry",
    "classify_entry",
    "split_search_path",
    "tokenize_search_path",
]

IMPLICIT_FALLBACK_ENTRY = "./"

_SCHEMES = ("http:", "https:", "ftp:")
_REMOTE_PREFIXES = tuple(
    prefix + scheme for prefix in ("", "|", "URL=") for scheme in _SCHEMES
)


# --- Search path entries -------------------------------------------------------


@dataclass(slots=True, frozen=True)
class LocalDirectory:
    """Directory template searched on the local filesystem.

    Attributes:
        path: Template expanded against the checksum (``%s`` / ``%Ns``).
        raw: Entry text as it appeared in the search path.
        allow_compressed: ``False`` when the entry carried a leading ``|``,
            which disables probing for compressed variants of the file.
    """

    path: str
    raw: str
    allow_compressed: bool = True

    @property
    def is_remote(self) -> bool:
        return False


@dataclass(slots=True, frozen=True)
class HttpUrl:
    """HTTP(S) URL template fetched through the transport."""

    template: str
    raw: str

    @property
    def is_remote(self) -> bool:
        return True


@dataclass(slots=True, frozen=True)
class FtpUrl:
    """FTP URL template fetched through the transport."""

    template: str
    raw: str

    @property
    def is_remote(self) -> bool:
        return True


SearchPathEntry = Union[LocalDirectory, HttpUrl, FtpUrl]


# --- Tokenizer -----------------------------------------------------------------


def _copy_url_prefix(raw: str, start: int, out: List[str]) -> int:
    """Copy ``scheme://host:`` verbatim and return the index to resume from."""

    index = raw.index(":", start) + 1
    out.append(raw[start:index])
    for _ in range(2):
        if index < len(raw) and raw[index] == "/":
            out.append("/")
            index += 1
    host_start = index
    while index < len(raw) and raw[index] not in ":/":
        index += 1
    out.append(raw[host_start:index])
    if index < len(raw) and raw[index] == ":":
        # port separator, kept as part of the URL
        out.append(":")
        index += 1
    return index


def split_search_path(raw: str, sep: str = os.pathsep) -> List[str]:
    """Split ``raw`` into entry strings, appending the implicit ``./`` fallback.

    Args:
        raw: Search path as found in ``REF_PATH``. May be empty.
        sep: Entry separator, ``:`` on POSIX and ``;`` on Windows.

    Returns:
        Non-empty entry strings in search order, always ending with ``./``.

    Examples:
        >>> split_search_path("a::b/%s:http://host/%s", ":")
        ['a:b/%s', 'http://host/%s', './']
    """

    entries: List[str] = []
    current: List[str] = []
    index = 0
    length = len(raw)
    while index < length:
        if not current and raw.startswith(_REMOTE_PREFIXES, index):
            index = _copy_url_prefix(raw, index, current)
            continue
        char = raw[index]
        if char == sep:
            if index + 1 < length and raw[index + 1] == sep:
                current.append(sep)
                index += 2
                continue
            if current:
                entries.append("".join(current))
                current = []
            index += 1
            continue
        current.append(char)
        index += 1
    if current:
        entries.append("".join(current))
    entries.append(IMPLICIT_FALLBACK_ENTRY)
    return entries


def classify_entry(raw: str) -> SearchPathEntry:
    """Turn one entry string into its typed search-path entry."""

    text = raw
    allow_compressed = True
    if text.startswith("|"):
        text = text[1:]
        allow_compressed = False
    if text.startswith("URL="):
        text = text[len("URL=") :]
    lowered = text.lower()
    if lowered.startswith(("http:", "https:")):
        return HttpUrl(template=text, raw=raw)
    if lowered.startswith("ftp:"):
        return FtpUrl(template=text, raw=raw)
    return LocalDirectory(path=text, raw=raw, allow_compressed=allow_compressed)


def tokenize_search_path(raw: str, sep: str = os.pathsep) -> List[SearchPathEntry]:
    """Return typed entries for ``raw`` in search order."""

    return [classify_entry(entry) for entry in split_search_path(raw or "", sep)]
