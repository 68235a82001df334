"""Pytest configuration for trustgate tests."""
import sys
from pathlib import Path

# tests/ sits next to src/; make the trustgate package importable without installing
SRC_DIR = Path(__file__).resolve().parent.parent / "src"

if str(SRC_DIR) not in sys.path:
    sys.path.insert(0, str(SRC_DIR))
