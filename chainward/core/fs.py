"""Owner-only filesystem helpers shared by the ledger and retention stores."""

import json
import os
import tempfile
from pathlib import Path
from typing import Any

OWNER_READ_WRITE = 0o600
OWNER_FULL = 0o700


def ensure_private_dir(path: Path) -> Path:
    """Create a directory and any missing parents, each restricted to the owner."""
    path = Path(path)
    missing = []
    current = path
    while not current.exists() and current != current.parent:
        missing.append(current)
        current = current.parent

    for directory in reversed(missing):
        directory.mkdir(mode=OWNER_FULL, exist_ok=True)
        # mkdir's mode is filtered by umask
        os.chmod(directory, OWNER_FULL)

    # Raises FileExistsError when path is a file
    path.mkdir(mode=OWNER_FULL, exist_ok=True)
    os.chmod(path, OWNER_FULL)
    return path


def write_json_atomic(path: Path, data: Any) -> None:
    """Replace a JSON document in one step, with owner-only permissions."""
    ensure_private_dir(path.parent)
    fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.chmod(tmp_name, OWNER_READ_WRITE)
        os.replace(tmp_name, path)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise
