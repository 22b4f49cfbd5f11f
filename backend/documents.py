# documents.py
from __future__ import annotations

import io
import os
import zipfile
from typing import List, Optional, Tuple

import xml.etree.ElementTree as ET

import fitz  # PyMuPDF

from exceptions import DocumentParseError, UnsupportedFileType
from models import Document, DocumentPage, new_id, utc_now_iso

PSEUDO_PAGE_SIZE = 3000
VALID_EXTENSIONS = (".pdf", ".docx", ".doc", ".txt")

W_NS = {"w": "http://schemas.openxmlformats.org/wordprocessingml/2006/main"}


def _upload_log(msg: str) -> None:
    print(f"[upload] {msg}")


def _pseudo_pages(content: str, size: int = PSEUDO_PAGE_SIZE) -> List[DocumentPage]:
    """Formats without real pages get fixed-size chunks, never zero pages."""
    pages = [
        DocumentPage(number=i // size + 1, text=content[i:i + size])
        for i in range(0, len(content), size)
    ]
    return pages or [DocumentPage(number=1, text=content)]


# ---------------- per-format readers ----------------

def parse_pdf(data: bytes) -> Tuple[str, List[DocumentPage]]:
    pages: List[DocumentPage] = []
    try:
        with fitz.open(stream=data, filetype="pdf") as doc:
            for i, page in enumerate(doc):
                pages.append(DocumentPage(number=i + 1, text=(page.get_text("text") or "").strip()))
    except Exception as e:
        raise DocumentParseError(f"Could not read PDF: {e}", e) from e
    if not pages:
        raise DocumentParseError("Could not read PDF: no pages")
    content = "\n\n".join(p.text for p in pages).strip()
    return content, pages


def _txt(el: Optional[ET.Element]) -> str:
    if el is None:
        return ""
    return "".join(t.text or "" for t in el.iter(f"{{{W_NS['w']}}}t"))


def parse_docx(data: bytes) -> Tuple[str, List[DocumentPage]]:
    try:
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            xml = zf.read("word/document.xml")
        root = ET.fromstring(xml)
    except (zipfile.BadZipFile, KeyError, ET.ParseError) as e:
        raise DocumentParseError(f"Could not read Word document: {e}", e) from e
    paragraphs = [_txt(p) for p in root.findall(".//w:body//w:p", W_NS)]
    content = "\n".join(paragraphs).strip()
    return content, _pseudo_pages(content)


def parse_txt(data: bytes) -> Tuple[str, List[DocumentPage]]:
    content = data.decode("utf-8", errors="replace")
    if content.startswith("\ufeff"):
        content = content[1:]
    return content, _pseudo_pages(content)


# ---------------- public ----------------

def is_valid_file_type(filename: str) -> bool:
    return (filename or "").lower().endswith(VALID_EXTENSIONS)


def format_file_size(n: int) -> str:
    if n < 1024:
        return f"{n} B"
    if n < 1024 * 1024:
        return f"{n / 1024:.1f} KB"
    return f"{n / (1024 * 1024):.1f} MB"


def parse_document(filename: str, data: bytes) -> Document:
    name = os.path.basename(filename or "")
    low = name.lower()
    if low.endswith(".pdf"):
        content, pages = parse_pdf(data)
        file_type = "pdf"
    elif low.endswith((".docx", ".doc")):
        content, pages = parse_docx(data)
        file_type = "docx"
    elif low.endswith(".txt"):
        content, pages = parse_txt(data)
        file_type = "txt"
    else:
        raise UnsupportedFileType(f"Unsupported file type: {name}")

    doc = Document(
        id=new_id(),
        name=name,
        content=content,
        pages=pages,
        file_size=len(data),
        file_type=file_type,
        uploaded_at=utc_now_iso(),
    )
    _upload_log(f"doc_id={doc.id} name={name} type={file_type} pages={doc.page_count} size={format_file_size(doc.file_size)}")
    return doc
