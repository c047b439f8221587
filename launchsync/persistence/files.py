"""Small JSON file helpers shared by the file-backed stores."""

from __future__ import annotations

import json
import os
import threading
import time
from pathlib import Path
from typing import Any

from launchsync.persistence.errors import SnapshotDecodeError


def read_json(path: Path) -> Any | None:
    """Decoded contents of ``path``, or *None* when the file does not exist."""
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except FileNotFoundError:
        return None
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SnapshotDecodeError(str(path), f"invalid JSON: {e}")


def write_json_atomic(path: Path, data: Any) -> None:
    """Replace ``path`` with ``data`` serialized as JSON, never half-written."""
    path.parent.mkdir(parents=True, exist_ok=True)
    # Unique per writer thread so concurrent writes never share a temp file
    suffix = f"{os.getpid()}.{threading.get_ident()}.{time.monotonic_ns()}"
    tmp = path.with_name(f".{path.name}.{suffix}.tmp")
    try:
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2, ensure_ascii=False)
        os.replace(tmp, path)
    finally:
        tmp.unlink(missing_ok=True)
