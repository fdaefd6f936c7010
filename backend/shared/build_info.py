"""Version metadata reported by /health.

CI sets APP_VERSION and GIT_COMMIT; local runs ask git for the commit.
"""

import os
import subprocess

_UNKNOWN = "dev"


def _local_commit() -> str:
    try:
        output = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],  # noqa: S607
            capture_output=True,
            text=True,
            check=True,
        )
    except (FileNotFoundError, subprocess.CalledProcessError):
        return _UNKNOWN
    return output.stdout.strip() or _UNKNOWN


APP_VERSION: str = os.environ.get("APP_VERSION", _UNKNOWN)
GIT_COMMIT: str = os.environ.get("GIT_COMMIT") or _local_commit()
