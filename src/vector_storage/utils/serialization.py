"""JSON serialization helpers for persisted collection state."""

import json
import os
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Any

from typing_extensions import override

import numpy as np


class PayloadEncoder(json.JSONEncoder):
    """JSON encoder that handles datetimes and numpy scalars/arrays."""

    @override
    def default(self, o: Any) -> Any:
        if isinstance(o, datetime):
            return o.isoformat()
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, np.ndarray):
            return o.tolist()
        return super().default(o)


def write_json(path: str | Path, data: Any) -> None:
    """Write JSON atomically: dump to a temp file, then replace the target."""
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            json.dump(data, f, cls=PayloadEncoder)
        os.replace(tmp_name, target)
    except BaseException:
        if os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise


def read_json(path: str | Path) -> Any:
    """Read a JSON file."""
    with open(path, encoding="utf-8") as f:
        return json.load(f)
