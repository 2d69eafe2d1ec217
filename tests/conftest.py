"""Pytest configuration for dapper tests.

Puts src/ on sys.path so the tests run from a plain checkout.
"""

from __future__ import annotations

import sys
from pathlib import Path

SRC_DIR = Path(__file__).parent.parent / "src"
if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
