"""Document data models."""
from dataclasses import dataclass, field
from typing import List


@dataclass(frozen=True)
class DocumentIdentity:
    """Where a document came from and what its bytes hash to."""
    name: str
    path: str
    file_format: str
    content_hash: str  # md5 of the raw file bytes


@dataclass
class Page:
    """Represents a single page from a document."""
    page_number: int
    text: str
    word_count: int


@dataclass
class Document:
    """Represents a loaded PDF document."""
    identity: DocumentIdentity
    pages: List[Page] = field(default_factory=list)

    @property
    def filename(self) -> str:
        return self.identity.name

    @property
    def total_pages(self) -> int:
        return len(self.pages)

    @property
    def page_texts(self) -> List[str]:
        return [page.text for page in self.pages]

    @property
    def full_text(self) -> str:
        """Page texts joined by blank lines."""
        return "\n\n".join(text for text in self.page_texts if text)
