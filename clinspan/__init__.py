"""
Clinspan - clinical text annotation and concept code extraction.

Clinical notes are run through an ordered chain of annotation stages (segments,
sentences, tokens, part-of-speech tags, chunks, lookup windows, dictionary
mentions, normalized forms) that build up a span graph over the immutable text.
Finished graphs are written as XMI and reduced to signed ontology codes.

The stage chain and runners are imported lazily so that the span model can be
used without pulling in numpy:

    # This does NOT import numpy:
    from clinspan import AnnotationGraph, Mention

    # This DOES import numpy (when the symbol is accessed):
    from clinspan import PipelineRunner
"""

from typing import TYPE_CHECKING

from clinspan.document import ClinicalDocument, load_document
from clinspan.errors import (
    ClinspanError,
    ConfigurationError,
    DocumentLoadError,
    ResourceError,
    SerializationError,
    StageError,
)
from clinspan.extract import extract_codes, get_ontology_concept_codes
from clinspan.graph import AnnotationGraph
from clinspan.span import (
    Chunk,
    CodedConcept,
    LookupWindow,
    Mention,
    MentionKind,
    Polarity,
    Segment,
    Sentence,
    Span,
    Token,
    TokenKind,
    UmlsConcept,
)

if TYPE_CHECKING:
    from clinspan.pipeline.chain import StageChain, build_chain
    from clinspan.runner import CodeExtractionRunner, PipelineRunner, RunResult

__all__ = [
    "ClinicalDocument",
    "load_document",
    "AnnotationGraph",
    "Span",
    "Segment",
    "Sentence",
    "Token",
    "TokenKind",
    "Chunk",
    "LookupWindow",
    "Mention",
    "MentionKind",
    "Polarity",
    "UmlsConcept",
    "CodedConcept",
    "extract_codes",
    "get_ontology_concept_codes",
    "ClinspanError",
    "ConfigurationError",
    "ResourceError",
    "DocumentLoadError",
    "StageError",
    "SerializationError",
    "StageChain",
    "build_chain",
    "PipelineRunner",
    "CodeExtractionRunner",
    "RunResult",
]

__version__ = "0.1.0"

_LAZY = {
    "StageChain": "clinspan.pipeline.chain",
    "build_chain": "clinspan.pipeline.chain",
    "PipelineRunner": "clinspan.runner",
    "CodeExtractionRunner": "clinspan.runner",
    "RunResult": "clinspan.runner",
}


def __getattr__(name: str):
    """Lazy import for the stage chain and runners."""
    if name in _LAZY:
        import importlib

        return getattr(importlib.import_module(_LAZY[name]), name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
