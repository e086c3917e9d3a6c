"""
Version helpers for the multisig payout service.

- ``__version__`` is the semantic version for packaging.
- ``version()`` returns it with the build commit attached when the
  deployment exports one (``GIT_COMMIT`` / ``BUILD_SHA``).
"""

from __future__ import annotations

import os
from typing import Optional

# Bump this when making a release; use semver (MAJOR.MINOR.PATCH)
__version__ = "0.3.0"


def _commit_short() -> Optional[str]:
    sha = os.getenv("GIT_COMMIT") or os.getenv("BUILD_SHA")
    return sha[:7] if sha else None


def version() -> str:
    """Return a PEP 440 version, e.g. "0.3.0" or "0.3.0+gabc1234"."""
    commit = _commit_short()
    if not commit:
        return __version__
    return f"{__version__}+g{commit}"


__all__ = ["__version__", "version"]
