from __future__ import annotations

from pathlib import Path
from typing import Union

from ..errors import DocumentError


def read_document(path: Union[str, Path]) -> str:
    """UTF-8 text of the document to deliver."""
    p = Path(path)
    if not p.is_file():
        raise DocumentError(str(p), "file not found")
    try:
        return p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentError(str(p), str(e)) from e


__all__ = ["read_document"]
