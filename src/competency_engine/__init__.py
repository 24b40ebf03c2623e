"""
competency-engine - package root

File: src/competency_engine/__init__.py

Purpose
- Trainee competency tracking: a requirements catalog, per-form grading and
  evidence linking, a Draft -> Submitted -> SignedOff lifecycle, and a
  level x specialty progress matrix.

Import boundary rules
- No side effects at import time (no config loading, no logging init).
- Subpackages are imported explicitly by callers; nothing heavy is pulled in here.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
