"""Tests for the JSON array chunker."""

from chatmigrate.importer.chunker import (
    DEFAULT_CHUNK_THRESHOLD,
    chunk_file_name,
    split_json_array_into_chunks,
)
from chatmigrate.utils.json import serialized_size
from tests.fixtures import make_conversation_items


class TestSplitJsonArrayIntoChunks:
    def test_empty_input_yields_no_chunks(self):
        assert split_json_array_into_chunks([], 100) == []
        assert split_json_array_into_chunks([], DEFAULT_CHUNK_THRESHOLD) == []

    def test_everything_fits_in_one_chunk(self):
        items = make_conversation_items(5)
        assert split_json_array_into_chunks(items, DEFAULT_CHUNK_THRESHOLD) == [items]

    def test_concatenation_reproduces_input(self):
        items = make_conversation_items(25)
        for threshold in (60, 120, 200, 500, 10_000):
            chunks = split_json_array_into_chunks(items, threshold)
            flattened = [item for chunk in chunks for item in chunk]
            assert flattened == items

    def test_chunks_respect_threshold(self):
        items = make_conversation_items(25)
        chunks = split_json_array_into_chunks(items, 200)
        assert len(chunks) > 1
        for chunk in chunks:
            assert serialized_size(chunk) <= 200

    def test_size_budget_matches_serialized_chunk(self):
        items = make_conversation_items(3)
        # Budget: 2 brackets + items + 2 separators
        expected = 2 + sum(serialized_size(i) for i in items) + 2
        assert serialized_size(items) == expected
        assert split_json_array_into_chunks(items, expected) == [items]
        assert len(split_json_array_into_chunks(items, expected - 1)) == 2

    def test_oversized_item_stands_alone(self):
        small = {"id": "s"}
        big = {"id": "big", "body": "y" * 500}
        chunks = split_json_array_into_chunks([small, big, small], 100)
        assert chunks == [[small], [big], [small]]

    def test_threshold_below_every_item(self):
        items = make_conversation_items(4)
        chunks = split_json_array_into_chunks(items, 1)
        assert chunks == [[item] for item in items]

    def test_non_ascii_measured_in_bytes(self):
        items = [{"t": "é" * 40}, {"t": "é" * 40}]
        # Each item is 8 + 80 bytes in UTF-8, so two never fit in 150
        assert len(split_json_array_into_chunks(items, 150)) == 2


class TestChunkFileName:
    def test_name(self):
        assert chunk_file_name("conversations.json", 2, 5) == "conversations.json_part2of5.json"
