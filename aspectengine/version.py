# aspectengine/version.py
from __future__ import annotations
import os

# Single place to bump the engine version (overridable via env for CI/preview)
VERSION = os.getenv("ASPECT_VERSION", "0.1.0")
