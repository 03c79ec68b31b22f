"""Workspace setup (Python-first, manifest-driven).

Core design goals:
- Idempotent steps with explicit "already done" predicates
- Declared step order and failure severity
- Atomic config writes that respect user edits outside managed blocks
- Explicit environment, no inherited shell state
- Centralized logging
"""

__all__ = []
