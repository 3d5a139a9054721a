"""Span and ontology concept models.

Every annotation produced by the pipeline is a half-open character range
``[begin, end)`` into the document text, tagged with a variant class. Spans are
frozen pydantic models: a stage that needs to change one builds a new span and
asks the graph to replace the old one.
"""

from enum import Enum
from typing import Annotated, Any, ClassVar, Literal, Union

from pydantic import BaseModel, Field, model_validator


class Polarity(str, Enum):
    """Assertion status of a mention."""

    POSITIVE = "positive"
    """The finding is asserted present."""

    NEGATED = "negated"
    """The finding is explicitly denied or absent."""

    UNCERTAIN = "uncertain"
    """The finding is hedged (possible, rule out, ...)."""

    @property
    def is_positive(self) -> bool:
        return self is Polarity.POSITIVE


class MentionKind(str, Enum):
    """Top-level mention family; decides the extraction block a mention lands in."""

    ENTITY = "entity"
    EVENT = "event"


MENTION_TYPES: dict[str, MentionKind] = {
    "EntityMention": MentionKind.ENTITY,
    "AnatomicalSiteMention": MentionKind.ENTITY,
    "EventMention": MentionKind.EVENT,
    "DiseaseDisorderMention": MentionKind.EVENT,
    "SignSymptomMention": MentionKind.EVENT,
    "ProcedureMention": MentionKind.EVENT,
    "MedicationMention": MentionKind.EVENT,
    "LabMention": MentionKind.EVENT,
}

# Mention types outside the table are extracted with the events.
DEFAULT_MENTION_KIND = MentionKind.EVENT


def mention_kind(mention_type: str) -> MentionKind:
    return MENTION_TYPES.get(mention_type, DEFAULT_MENTION_KIND)


class TokenKind(str, Enum):
    WORD = "word"
    NUMBER = "number"
    PUNCTUATION = "punctuation"
    SYMBOL = "symbol"


# --- Ontology concepts ---


class UmlsConcept(BaseModel, frozen=True):
    """A UMLS concept; its code is the CUI."""

    scheme_kind: Literal["umls"] = "umls"
    cui: str = Field(min_length=1, description="UMLS Concept Unique Identifier, e.g. C0008031.")
    tui: str | None = Field(default=None, description="UMLS semantic type identifier, e.g. T184.")
    preferred_text: str | None = None


class CodedConcept(BaseModel, frozen=True):
    """A concept from any other coded ontology (SNOMEDCT, RXNORM, ...)."""

    scheme_kind: Literal["coded"] = "coded"
    coding_scheme: str = Field(min_length=1)
    code: str = Field(min_length=1)


OntologyConcept = Annotated[Union[UmlsConcept, CodedConcept], Field(discriminator="scheme_kind")]


# --- Spans ---


class Span(BaseModel, frozen=True):
    """Base for all annotation spans.

    ``span_id`` is assigned by :class:`clinspan.graph.AnnotationGraph` on
    insertion and stays stable for the span's lifetime in that graph.
    """

    type_name: ClassVar[str] = "Span"
    priority: ClassVar[int] = 100

    span_id: int | None = None
    begin: int = Field(ge=0)
    end: int = Field(ge=0)

    @model_validator(mode="after")
    def _check_bounds(self) -> "Span":
        if self.end < self.begin:
            raise ValueError(f"span end {self.end} precedes begin {self.begin}")
        return self

    @property
    def bounds(self) -> tuple[int, int]:
        return (self.begin, self.end)

    def contains(self, other: "Span") -> bool:
        return self.begin <= other.begin and other.end <= self.end

    def __len__(self) -> int:
        return self.end - self.begin


class Segment(Span, frozen=True):
    type_name: ClassVar[str] = "Segment"
    priority: ClassVar[int] = 0

    segment_id: str = "SIMPLE_SEGMENT"


class Sentence(Span, frozen=True):
    type_name: ClassVar[str] = "Sentence"
    priority: ClassVar[int] = 1

    sentence_number: int = Field(default=0, ge=0)


class Token(Span, frozen=True):
    type_name: ClassVar[str] = "Token"
    priority: ClassVar[int] = 2

    token_number: int = Field(default=0, ge=0)
    kind: TokenKind = TokenKind.WORD
    part_of_speech: str | None = None
    normalized_form: str | None = None


class Chunk(Span, frozen=True):
    type_name: ClassVar[str] = "Chunk"
    priority: ClassVar[int] = 3

    chunk_type: str = Field(min_length=1, description="Phrase label, e.g. NP, PP, VP.")
    superseded: bool = Field(
        default=False,
        description="Replaced by a merged chunk; kept for audit and ignored by later stages.",
    )


class LookupWindow(Span, frozen=True):
    type_name: ClassVar[str] = "LookupWindow"
    priority: ClassVar[int] = 4


class Mention(Span, frozen=True):
    """An identified entity or event with its ontology concepts."""

    type_name: ClassVar[str] = "Mention"
    priority: ClassVar[int] = 5

    mention_type: str = Field(default="EntityMention", min_length=1)
    kind: MentionKind
    polarity: Polarity = Polarity.POSITIVE
    concepts: tuple[OntologyConcept, ...] = ()

    @model_validator(mode="before")
    @classmethod
    def _infer_kind(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("kind") is None:
            data = {**data, "kind": mention_kind(data.get("mention_type", "EntityMention"))}
        return data


SPAN_TYPES: dict[str, type[Span]] = {
    cls.type_name: cls for cls in (Segment, Sentence, Token, Chunk, LookupWindow, Mention)
}
