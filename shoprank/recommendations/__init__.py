"""
Hybrid recommendation surface.

Responsibilities:
- Build collaborative, content-based and location-based candidate lists.
- Blend them with A/B-variant weights keyed by (target type, target id).
- Fall back to global popularity when nothing personal is available.
"""
