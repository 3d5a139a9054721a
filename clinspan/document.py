"""Clinical document model and loader."""

from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field

from clinspan.errors import DocumentLoadError

FORM_FEED = "\x0c"


class ClinicalDocument(BaseModel):
    """A clinical note ready for annotation.

    The text is immutable once loaded; every span in the document's annotation
    graph indexes into it.
    """

    model_config = {"frozen": True}

    document_id: str = Field(
        description="Base name of the source file; names the code and XMI outputs."
    )
    text: str = Field(
        description="Normalized document text."
    )
    source_uri: str | None = Field(
        default=None,
        description="Where the text was read from (file URI or path).",
    )
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the document was loaded.",
    )

    @classmethod
    def from_text(cls, text: str, document_id: str, source_uri: str | None = None) -> "ClinicalDocument":
        """Build a document from raw text, applying the loader normalization."""
        return cls(document_id=document_id, text=normalize_text(text), source_uri=source_uri)


def normalize_text(raw: str) -> str:
    """Replace form feeds with spaces; XML 1.0 cannot carry that control character."""
    return raw.replace(FORM_FEED, " ")


def load_document(path: Path | str, encoding: str = "utf-8") -> ClinicalDocument:
    """Read a text file into a ClinicalDocument.

    Raises:
        DocumentLoadError: If the file cannot be read or decoded.
    """
    path = Path(path)
    try:
        raw = path.read_text(encoding=encoding)
    except (OSError, UnicodeDecodeError) as e:
        raise DocumentLoadError(path.name, f"cannot read {path}: {e}") from e
    return ClinicalDocument.from_text(raw, document_id=path.name, source_uri=path.resolve().as_uri())
