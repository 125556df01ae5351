"""Split a JSON array into byte-bounded chunks for upload.

The threshold sits below the 100 MB request body limit of the proxy in front
of the destination, leaving room for multipart overhead.
"""

from typing import TypeVar

from chatmigrate.utils.json import serialized_size

T = TypeVar("T")

DEFAULT_CHUNK_THRESHOLD = 90 * 1024 * 1024

_BRACKETS = 2
_SEPARATOR = 1


def split_json_array_into_chunks(items: list[T], max_bytes_per_chunk: int) -> list[list[T]]:
    """Greedily pack items, in order, into chunks of at most max_bytes_per_chunk.

    A chunk's size is the sum of its items' compact encodings plus brackets
    and separators. An item that alone exceeds the limit gets a chunk of its
    own; items are never split or reordered.
    """
    chunks: list[list[T]] = []
    current: list[T] = []
    current_size = _BRACKETS

    for item in items:
        item_size = serialized_size(item)

        if current and current_size + item_size + _SEPARATOR > max_bytes_per_chunk:
            chunks.append(current)
            current = []
            current_size = _BRACKETS

        current.append(item)
        current_size += item_size + (_SEPARATOR if len(current) > 1 else 0)

    if current:
        chunks.append(current)

    return chunks


def chunk_file_name(original_name: str, index: int, total: int) -> str:
    """Name of the index-th (1-based) of total chunks."""
    return f"{original_name}_part{index}of{total}.json"
