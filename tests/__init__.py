"""Test suite for matchcast."""

from __future__ import annotations

import sys
from pathlib import Path

try:
    from pydantic_settings import SettingsConfigDict  # noqa: F401  # availability check only
except ImportError as exc:  # pragma: no cover - import-time guard
    msg = (
        "pydantic-settings>=2 is required for the test suite; "
        "install the package with its test extra: pip install -e '.[test]'."
    )
    raise RuntimeError(msg) from exc

# run against the working tree even without an editable install
SRC = Path(__file__).resolve().parents[1] / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))
