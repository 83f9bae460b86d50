# src/tix_kanban/core/atomic_io.py

"""
Temp-then-rename writes.

Every file the app persists goes through here: the payload is written to a
temporary file in the target's directory, flushed, then renamed over the
target with os.replace(). Readers see either the old or the new file, never
a partial one, and a crash before the rename leaves the old version intact.

Temporary names end with ".tmp" so directory scans for "*.json" / "*.md"
never pick up a crash leftover.
"""

from __future__ import annotations

import contextlib
import json
import os
import tempfile
from pathlib import Path
from typing import Any


def write_text_atomic(path: str | Path, text: str) -> None:
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        dir=str(target.parent),
        prefix=f".{target.name}.",
        suffix=".tmp",
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(text)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_name, target)
    except BaseException:
        with contextlib.suppress(OSError):
            os.unlink(tmp_name)
        raise


def write_json_atomic(path: str | Path, data: Any) -> None:
    write_text_atomic(path, json.dumps(data, ensure_ascii=False, indent=2) + "\n")


def read_json(path: str | Path) -> Any:
    return json.loads(Path(path).read_text("utf-8"))
