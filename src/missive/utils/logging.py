import logging
import os
import sys
from typing import Optional

ROOT = "missive"


def get_logger(name: Optional[str] = None):
    root = logging.getLogger(ROOT)
    if not root.handlers:
        h = logging.StreamHandler(sys.stdout)
        fmt = logging.Formatter("[%(asctime)s] %(levelname)s %(name)s %(message)s")
        h.setFormatter(fmt)
        root.addHandler(h)
        root.setLevel(os.getenv("MISSIVE_LOG_LEVEL", "INFO").upper())
    if not name or name == ROOT:
        return root
    # module loggers hang off the package logger and share its handler
    return root.getChild(name[len(ROOT) + 1 :] if name.startswith(ROOT + ".") else name)
