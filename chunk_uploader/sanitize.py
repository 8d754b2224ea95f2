"""Module sanitize: normalisation des noms de fichiers envoyés par le client."""
import re
import uuid

# characters illegal on some filesystems or needing escaping in a shell
SPECIAL_CHARS = "?[]/\\=<>:;,'\"&$#*()|~`!{}"

_special_re = re.compile("[" + re.escape(SPECIAL_CHARS) + "]")
_dash_re = re.compile(r"[\s-]+")


def sanitize_file_name(filename: str) -> str:
    """Strip special characters, collapse whitespace and dashes into a single
    dash and trim periods, dashes and underscores from both ends.

    >>> sanitize_file_name("My File!.txt")
    'My-File.txt'
    """
    filename = _special_re.sub("", filename or "")
    filename = _dash_re.sub("-", filename)
    return filename.strip(".-_")


def new_file_token() -> str:
    return f"file_{uuid.uuid4().hex[:13]}"
