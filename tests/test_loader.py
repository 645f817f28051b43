from pathlib import Path
from typing import Callable

import pytest

from ragdemo.services.ingestion.errors import FileReadError
from ragdemo.services.rag.loader import document_id, load_file, load_pdf_documents

SOURCE = "https://example.com/org/repo.git"


def test_load_text_file_as_single_document(tmp_path: Path) -> None:
    (tmp_path / "docs").mkdir()
    path = tmp_path / "docs" / "guide.md"
    path.write_text("# Guide\nUse the pipeline.", encoding="utf-8")

    documents = load_file(path, source=SOURCE, root=tmp_path)

    assert len(documents) == 1
    assert documents[0].source_path == "docs/guide.md"
    assert documents[0].source == SOURCE
    assert documents[0].text == "# Guide\nUse the pipeline."
    assert documents[0].page_number is None
    assert documents[0].doc_id == document_id(SOURCE, "docs/guide.md")


def test_empty_text_file_yields_no_documents(tmp_path: Path) -> None:
    path = tmp_path / "empty.txt"
    path.write_text("   \n", encoding="utf-8")

    assert load_file(path, source=SOURCE, root=tmp_path) == []


def test_undecodable_text_file_raises_file_read_error(tmp_path: Path) -> None:
    path = tmp_path / "latin1.txt"
    path.write_bytes(b"caf\xe9 \xff\xfe")

    with pytest.raises(FileReadError, match="latin1.txt"):
        load_file(path, source=SOURCE, root=tmp_path)


def test_pdf_is_extracted_page_by_page(
    tmp_path: Path, make_pdf: Callable[[list[str]], bytes]
) -> None:
    path = tmp_path / "c.pdf"
    path.write_bytes(make_pdf(["First page about clones.", "Second page about chunks."]))

    documents = load_file(path, source=SOURCE, root=tmp_path)

    assert [document.page_number for document in documents] == [1, 2]
    assert "First page about clones." in documents[0].text
    assert "Second page about chunks." in documents[1].text
    assert all("%PDF" not in document.text for document in documents)
    assert len({document.doc_id for document in documents}) == 1


def test_corrupt_pdf_raises_file_read_error(tmp_path: Path) -> None:
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"this is not a pdf at all")

    with pytest.raises(FileReadError):
        load_pdf_documents(path, source=SOURCE, source_path="broken.pdf")
