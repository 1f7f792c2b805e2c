"""dashkeeper: keeps a periodically refreshed dashboard consistent and leak-free.

The engine coordinates throttled, prioritized panel updates with snapshot
rollback, corruption detection, container recreation and DOM/memory
monitoring. `dashkeeper.app.build_dashboard` wires a ready-to-use graph.
"""

from __future__ import annotations

__all__ = ["__version__"]
__version__ = "0.1.0"
