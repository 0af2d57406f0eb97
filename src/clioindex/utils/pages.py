"""Loading extracted page text from disk (plain text or JSON)."""
import json
from pathlib import Path
from typing import List, Union

from clioindex.schema.library import DocumentPage

FORM_FEED = "\f"


def load_pages(path: Union[str, Path]) -> List[DocumentPage]:
    """
    Read pages from a `.txt` file (pages separated by form feeds) or a
    `.json` file holding `[{"page_number": int, "text": str}, ...]`.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if suffix == ".txt":
        text = path.read_text(encoding="utf-8")
        return [DocumentPage(page_number=i, text=page) for i, page in enumerate(text.split(FORM_FEED), 1)]

    if suffix == ".json":
        payload = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(payload, list):
            raise ValueError(f"{path}: expected a JSON list of pages")
        pages = []
        for i, item in enumerate(payload, 1):
            if not isinstance(item, dict) or "text" not in item:
                raise ValueError(f"{path}: page {i} has no 'text' field")
            pages.append(DocumentPage(page_number=int(item.get("page_number", i)), text=str(item["text"])))
        return pages

    raise ValueError(f"Unsupported page file: {path} (expected .txt or .json)")
