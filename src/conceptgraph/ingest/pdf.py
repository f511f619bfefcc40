from __future__ import annotations

from pathlib import Path


def extract_text(path: str | Path) -> str:
    """Plain text of every page, pages separated by blank lines."""
    p = Path(path)
    # Prefer PyMuPDF for better extraction.
    try:
        import fitz  # type: ignore

        doc = fitz.open(str(p))
        try:
            pages = [doc.load_page(i).get_text("text") or "" for i in range(doc.page_count)]
        finally:
            doc.close()
        return _join(pages)
    except ImportError:
        pass

    from pypdf import PdfReader  # type: ignore

    reader = PdfReader(str(p))
    return _join([page.extract_text() or "" for page in reader.pages])


def _join(pages: list[str]) -> str:
    out = []
    for text in pages:
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        text = "\n".join(ln.rstrip() for ln in text.split("\n")).strip()
        if text:
            out.append(text)
    return "\n\n".join(out)
