"""Core package for dashkeeper.

Holds configuration, the error taxonomy, the fetch `Result` type and the
pydantic contracts. Import from the submodules directly, e.g.:
    from dashkeeper.core.settings import load_settings, get_logger
"""

from __future__ import annotations

__all__ = ["__doc__"]
