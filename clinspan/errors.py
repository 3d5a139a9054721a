"""Exception hierarchy for the clinspan pipeline.

Errors fall into two groups. Startup errors (``ConfigurationError``,
``ResourceError``) abort a run before any document is touched. Document errors
(``DocumentLoadError``, ``StageError``, ``SerializationError``) abort only the
document being processed; the runner records them and moves on.
"""


class ClinspanError(Exception):
    """Base class for all errors raised by clinspan."""


class ConfigurationError(ClinspanError):
    """A required setting is missing or invalid."""


class ResourceError(ClinspanError):
    """A model, lexicon or dictionary resource is missing or malformed."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class DocumentError(ClinspanError):
    """Base class for failures scoped to a single document."""

    def __init__(self, document_id: str, message: str):
        self.document_id = document_id
        super().__init__(f"[{document_id}] {message}")


class DocumentLoadError(DocumentError):
    """The document source could not be read."""


class StageError(DocumentError):
    """A pipeline stage could not process the current annotation graph."""

    def __init__(self, stage: str, document_id: str, message: str):
        self.stage = stage
        super().__init__(document_id, f"stage {stage!r} failed: {message}")


class SerializationError(DocumentError):
    """A code file or XMI file could not be written or read."""
