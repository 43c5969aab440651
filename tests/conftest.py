from __future__ import annotations

import os
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

# The server module builds its catalog from the environment at import time; keep
# unit tests deterministic regardless of the developer's shell.
for _key in ("SCRAPE_HEURISTIC_ORDER", "SCRAPE_MIN_ARTICLE_CHARS", "SCRAPE_TOOL_TOTAL_TIMEOUT_SECONDS"):
    os.environ.pop(_key, None)
