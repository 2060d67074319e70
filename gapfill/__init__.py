"""gapfill Python package.

Public API:
  - import from `gapfill.api` (preferred) or `import gapfill` (re-export)
"""

from __future__ import annotations

from .api import *  # noqa: F401,F403
from . import api as _api

__all__ = list(_api.__all__)
