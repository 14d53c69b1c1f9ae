from __future__ import annotations

import logging
import os
from pathlib import Path


logger = logging.getLogger("gitdeploy.env")


def load_local_env(env_path: Path | str = Path(".env"), *, override: bool = False) -> None:
    """Load key=value pairs from a local .env file.

    Variables already exported in the process environment are kept unless
    ``override`` is set, so deployment tooling can pin values.
    """
    path = Path(env_path)
    if not path.exists():
        return

    for raw_line in path.read_text().splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].lstrip()
        if "=" not in line:
            logger.warning("Skipping malformed .env line in %s", path)
            continue

        key, value = line.split("=", 1)
        clean_key = key.strip()
        clean_value = value.strip().strip('"').strip("'")
        if not override and clean_key in os.environ:
            continue
        os.environ[clean_key] = clean_value
