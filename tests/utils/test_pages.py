"""
Tests for loading page files.
"""
import json

import pytest

from clioindex.utils.pages import load_pages


class TestLoadPages:

    def test_text_file_split_on_form_feed(self, tmp_path):
        path = tmp_path / "book.txt"
        path.write_text("First page.\fSecond page.\fThird page.", encoding="utf-8")

        pages = load_pages(path)

        assert [p.page_number for p in pages] == [1, 2, 3]
        assert pages[1].text == "Second page."

    def test_json_file(self, tmp_path):
        path = tmp_path / "book.json"
        path.write_text(json.dumps([
            {"page_number": 10, "text": "Page ten."},
            {"text": "No number given."},
        ]), encoding="utf-8")

        pages = load_pages(str(path))

        assert [(p.page_number, p.text) for p in pages] == [(10, "Page ten."), (2, "No number given.")]

    def test_json_must_be_list(self, tmp_path):
        path = tmp_path / "book.json"
        path.write_text(json.dumps({"text": "x"}), encoding="utf-8")

        with pytest.raises(ValueError):
            load_pages(path)

    def test_json_pages_need_text(self, tmp_path):
        path = tmp_path / "book.json"
        path.write_text(json.dumps([{"page_number": 1}]), encoding="utf-8")

        with pytest.raises(ValueError, match="page 1"):
            load_pages(path)

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "book.pdf"
        path.write_bytes(b"%PDF")

        with pytest.raises(ValueError):
            load_pages(path)
