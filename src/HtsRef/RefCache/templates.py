"""Checksum-driven path template expansion.

Cache locations and search-path entries are written as templates such as
``/var/cache/hts-ref/%2s/%2s/%s`` or ``http://host/md5/%s``.  Each ``%s``
consumes the rest of the checksum and each ``%Ns`` consumes the next ``N``
characters, so one checksum fans out into a directory hierarchy.  Whatever is
left of the checksum once the template is exhausted becomes the final path
segment.
"""

from __future__ import annotations

__all__ = ["expand_path_template"]


def _scan_digits(template: str, start: int) -> int:
    end = start
    while end < len(template) and template[end].isdigit():
        end += 1
    return end


def expand_path_template(template: str, checksum: str) -> str:
    """Expand ``template`` against ``checksum``.

    Args:
        template: Directory or URL template containing ``%s`` / ``%Ns``
            placeholders. Unrecognised ``%`` sequences are copied literally.
        checksum: Text substituted into the placeholders, consumed left to right.

    Returns:
        Concrete path. Unconsumed checksum characters are appended after a
        ``/`` separator unless the expansion already ends with one.

    Examples:
        >>> expand_path_template("%2s/%2s/%s", "ac37ec46683600f808cdd41eac1d55cd")
        'ac/37/ec46683600f808cdd41eac1d55cd'
        >>> expand_path_template("/refs", "ac37ec46")
        '/refs/ac37ec46'
    """

    parts: list[str] = []
    remaining = checksum
    position = 0
    while True:
        marker = template.find("%", position)
        if marker < 0:
            break
        parts.append(template[position:marker])
        cursor = marker + 1
        if cursor >= len(template):
            parts.append("%")
            position = cursor
            break
        code = template[cursor]
        if code == "s":
            parts.append(remaining)
            remaining = ""
            position = cursor + 1
        elif code.isdigit():
            digits_end = _scan_digits(template, cursor)
            if digits_end < len(template) and template[digits_end] == "s":
                width = min(int(template[cursor:digits_end]), len(remaining))
                parts.append(remaining[:width])
                remaining = remaining[width:]
                position = digits_end + 1
            else:
                # "%1x" style: keep the percent and first digit, rescan after it
                parts.append("%" + code)
                position = cursor + 1
        else:
            parts.append("%" + code)
            position = cursor + 1

    parts.append(template[position:])
    expanded = "".join(parts)
    if remaining:
        if expanded and not expanded.endswith("/"):
            expanded += "/"
        expanded += remaining
    return expanded
