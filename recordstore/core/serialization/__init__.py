"""
Canonical JSON codec for record bodies.
"""

from .codec import deserialize, is_serializable, serialize

__all__ = ["serialize", "deserialize", "is_serializable"]
