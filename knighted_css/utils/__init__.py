"""
knighted_css utilities — Cross-cutting concerns

Small helpers shared by the compilers, the graph walker and the loaders.
"""

from .files import read_text, read_text_async
from .awaitables import maybe_await

__all__ = ['read_text', 'read_text_async', 'maybe_await']
