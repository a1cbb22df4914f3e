"""Media key containment check for chat uploads.

A chat media key has exactly three segments:
``<prefix>/<thread_id>/<filename>``. Anything else (another thread's
namespace, absolute keys, traversal, nested folders) is rejected. No
storage I/O happens here.
"""

from __future__ import annotations

import re
import uuid

_FILENAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,254}$")


def thread_namespace(thread_id: uuid.UUID, prefix: str = "chats") -> str:
    """Return the object-store prefix reserved for a thread, with trailing slash."""
    return f"{prefix.strip('/')}/{thread_id}/"


def is_valid_media_path(thread_id: uuid.UUID, path: str | None, prefix: str = "chats") -> bool:
    if not path or not isinstance(path, str):
        return False
    if path.startswith(("/", "\\")) or "\\" in path or ".." in path:
        return False

    segments = path.split("/")
    if len(segments) != 3:
        return False

    namespace, thread_segment, filename = segments
    if namespace != prefix.strip("/"):
        return False
    if thread_segment != str(thread_id):
        return False
    return bool(_FILENAME_RE.match(filename))
