"""Document loading service for PDF processing."""
import hashlib
import logging
import os
from typing import Callable, List, Optional
import fitz  # PyMuPDF

from models.document import Document, DocumentIdentity, Page
from services.text_normalizer import normalize
from config import DOCS_DIRECTORY, SKIP_TRAILING_PAGES

logger = logging.getLogger(__name__)

PDF_FORMAT = ".pdf"


def compute_content_hash(filepath: str) -> str:
    """md5 of the raw file bytes; the document's stable identity."""
    digest = hashlib.md5()
    with open(filepath, "rb") as handle:
        for block in iter(lambda: handle.read(1 << 16), b""):
            digest.update(block)
    return digest.hexdigest()


class DocumentLoader:
    """Loads and extracts normalized per-page text from PDF files."""

    def __init__(
        self,
        docs_directory: str = DOCS_DIRECTORY,
        skip_trailing_pages: int = SKIP_TRAILING_PAGES,
        normalizer: Optional[Callable[[str], str]] = normalize
    ):
        """
        Initialize DocumentLoader.

        Args:
            docs_directory: Path to directory containing PDF files
            skip_trailing_pages: Number of template pages to drop from the end of every file
            normalizer: Cleanup applied to each page's raw text (None keeps raw text)
        """
        self.docs_directory = docs_directory
        self.skip_trailing_pages = skip_trailing_pages
        self.normalizer = normalizer

    def list_pdf_files(self) -> List[str]:
        """Return full paths of the PDF files in the documents directory, sorted."""
        if not os.path.exists(self.docs_directory):
            logger.error(f"Documents directory not found: {self.docs_directory}")
            return []

        pdf_files = sorted(
            f for f in os.listdir(self.docs_directory) if f.lower().endswith(PDF_FORMAT)
        )
        logger.info(f"Found {len(pdf_files)} PDF files in {self.docs_directory}")
        return [os.path.join(self.docs_directory, f) for f in pdf_files]

    def load_document(self, filepath: str) -> Document:
        """
        Load a single PDF file and extract text page-by-page.

        Args:
            filepath: Full path to PDF file

        Returns:
            Document object with normalized pages and content hash
        """
        filename = os.path.basename(filepath)

        try:
            pdf_document = fitz.open(filepath)
            try:
                raw_pages = [page.get_text() for page in pdf_document]
            finally:
                pdf_document.close()
        except Exception as e:
            logger.error(f"Failed to load PDF {filename}: {str(e)}")
            raise

        if self.skip_trailing_pages:
            raw_pages = raw_pages[:max(0, len(raw_pages) - self.skip_trailing_pages)]

        pages = []
        for index, raw in enumerate(raw_pages):
            text = self.normalizer(raw) if self.normalizer else raw
            pages.append(Page(
                page_number=index + 1,  # 1-indexed
                text=text,
                word_count=len(text.split())
            ))

        identity = DocumentIdentity(
            name=filename,
            path=filepath,
            file_format=os.path.splitext(filename)[1].lower() or PDF_FORMAT,
            content_hash=compute_content_hash(filepath),
        )
        logger.info(f"Loaded {filename}: {len(pages)} pages (hash {identity.content_hash})")
        return Document(identity=identity, pages=pages)
