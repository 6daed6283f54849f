"""Offline image update servicing (Python-first, state-driven).

Core design goals:
- Resolve applicable updates from a catalog backend
- Idempotent, validated local artifact cache
- Cache pruned against catalog supersedence
- Strict apply precedence with format fallback
- Centralized logging
"""

__all__ = []
