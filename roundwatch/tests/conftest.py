# ==============================================================================
# conftest.py  –  Shared test setup
#   Keeps log files and the round cache out of the working tree / home dir.
# ==============================================================================

import os
import tempfile

os.environ.setdefault(
    "ROUNDWATCH_LOGS_DIR", os.path.join(tempfile.gettempdir(), "roundwatch-test-logs")
)
os.environ.setdefault("CACHE_DATABASE_URL", "sqlite://")
