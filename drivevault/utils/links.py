"""Google Drive link parsing."""

from __future__ import annotations

import re

# Drive IDs are long runs of letters, digits, '-' and '_'. Any run of 25 or
# more such characters in a link is taken as the file ID.
FILE_ID_REGEX = re.compile(r"[-\w]{25,}", re.ASCII)


def extract_file_id(link: str) -> str | None:
    """Extract the file ID from a Drive link or a bare ID.

    Args:
        link: A webViewLink such as
            ``https://drive.google.com/file/d/<id>/view?usp=drivesdk``.

    Returns:
        The first run of 25+ ID characters, or None if there is none.
    """
    if not link:
        return None
    match = FILE_ID_REGEX.search(link)
    if match:
        return match.group(0)
    return None
