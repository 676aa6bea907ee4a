"""
File reads — UTF-8 text, blocking or off the event loop.

The descriptor is released on every exit path; nothing here writes.
"""

import asyncio
from pathlib import Path
from typing import Union

PathLike = Union[str, Path]


def read_text(path: PathLike) -> str:
    with open(path, encoding="utf-8") as f:
        return f.read()


async def read_text_async(path: PathLike) -> str:
    """Read a file in a worker thread."""
    return await asyncio.to_thread(read_text, path)
