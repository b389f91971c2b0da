import posixpath
import re
import uuid
from typing import Optional

from upload_gateway.config import ALLOWED_MIME_TYPES

# Anything but ASCII letters, digits, underscore, hyphen and dot
_UNSAFE_CHARS = re.compile(r'[^A-Za-z0-9_.\-]')

FALLBACK_BASE = "file"


def sanitize_filename(name: Optional[str]) -> str:
    """Replace every unsafe character with an underscore, one for one."""
    return _UNSAFE_CHARS.sub("_", name or "")


def client_basename(name: Optional[str]) -> str:
    """Last path component of a client supplied name, for either separator style."""
    return posixpath.basename((name or "").replace("\\", "/"))


def make_storage_name(original_filename: Optional[str], mimetype: Optional[str]) -> str:
    """Build a unique on-disk name: ``{base}_{uuid4}{extension}``.

    The extension comes from the client filename when it has one, otherwise
    from the MIME type table. The base falls back to ``file`` when nothing
    usable is left after sanitizing.
    """
    name = client_basename(original_filename)
    stem, ext = posixpath.splitext(name)
    if not ext:
        ext = ALLOWED_MIME_TYPES.get(mimetype or "", "")

    base = sanitize_filename(stem) or FALLBACK_BASE
    return f"{base}_{uuid.uuid4()}{sanitize_filename(ext)}"
