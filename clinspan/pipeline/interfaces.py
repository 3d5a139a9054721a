"""Interfaces for the external collaborators of the annotation pipeline.

The stage chain does not know how sentences are detected, how words are tagged
or how terms are matched against an ontology. It only knows these contracts:

- **SentenceModelInterface**: sentence boundaries within a segment.
- **TokenizerInterface**: word, number and punctuation tokens within a sentence.
- **PosTaggerInterface**: one part-of-speech tag per token.
- **ChunkerInterface**: shallow-parse phrases over tagged tokens.
- **DictionaryResolverInterface**: ontology terms inside a lookup window.
- **LexicalNormalizerInterface**: base form of a word.

Implementations are loaded once at startup and shared read-only by every
document, including documents processed concurrently. They must therefore
keep no per-document state. A missing or corrupt model is a startup error
(:class:`clinspan.errors.ResourceError`), never a per-document one.

Default rule-based implementations live in :mod:`clinspan.pipeline.models`
and :mod:`clinspan.pipeline.dictionary`.
"""

from abc import ABC, abstractmethod
from typing import Sequence

from pydantic import BaseModel, Field, model_validator

from clinspan.span import LookupWindow, MentionKind, OntologyConcept, Polarity, Sentence, TokenKind


class SentenceModelInterface(ABC):
    """Detect sentence boundaries.

    Clinical notes break sentences in unusual places (lists, vitals, headers),
    so implementations are typically statistical models trained on clinical
    text. The contract is only about offsets.
    """

    @abstractmethod
    async def detect(self, text: str, begin: int, end: int) -> list[tuple[int, int]]:
        """Find sentences inside ``text[begin:end]``.

        Args:
            text: The full document text.
            begin: Start of the region to split (a segment).
            end: End of the region to split.

        Returns:
            Absolute ``(begin, end)`` offsets of non-overlapping sentences in
            document order, each within ``[begin, end]``. Whitespace-only
            stretches are not sentences.
        """


class TokenizerInterface(ABC):
    """Split a sentence into tokens."""

    @abstractmethod
    async def tokenize(self, text: str, begin: int, end: int) -> list[tuple[int, int, TokenKind]]:
        """Tokenize ``text[begin:end]``.

        Returns:
            Absolute ``(begin, end, kind)`` triples in document order. Tokens do
            not overlap and never include whitespace.
        """


class PosTaggerInterface(ABC):
    """Assign part-of-speech tags (Penn Treebank tag set)."""

    @abstractmethod
    async def tag(self, words: Sequence[str]) -> list[str]:
        """Tag the words of one sentence.

        Args:
            words: Token texts of a single sentence, in order.

        Returns:
            One tag per word, same length and order as ``words``.
        """


class ChunkerInterface(ABC):
    """Group tagged tokens into phrase chunks."""

    @abstractmethod
    async def chunk(self, words: Sequence[str], tags: Sequence[str]) -> list[tuple[int, int, str]]:
        """Chunk one sentence.

        Args:
            words: Token texts of a single sentence.
            tags: Part-of-speech tags aligned with ``words``.

        Returns:
            ``(first_token, last_token_exclusive, label)`` triples over token
            indices, non-overlapping and in order. Labels follow the usual
            shallow-parse set (``NP``, ``PP``, ``VP``, ``ADJP``, ...).
        """


class LookupHit(BaseModel):
    """One dictionary match inside a lookup window."""

    model_config = {"frozen": True}

    begin: int = Field(ge=0, description="Absolute start offset of the matched term.")
    end: int = Field(ge=0, description="Absolute end offset of the matched term.")
    mention_type: str = Field(
        default="EntityMention",
        description="Mention variant name, e.g. 'DiseaseDisorderMention'.",
    )
    kind: MentionKind | None = Field(
        default=None,
        description="Entity or event; inferred from mention_type when omitted.",
    )
    polarity: Polarity = Polarity.POSITIVE
    concepts: tuple[OntologyConcept, ...] = ()

    @model_validator(mode="after")
    def _check_bounds(self) -> "LookupHit":
        if self.end < self.begin:
            raise ValueError("hit end precedes begin")
        return self


class DictionaryResolverInterface(ABC):
    """Resolve ontology terms inside a lookup window.

    The resolver owns both term matching and assertion: each hit carries the
    polarity it derived from the sentence context (for example a preceding
    "denies" makes the hit negated).
    """

    @abstractmethod
    async def lookup(
        self,
        window: LookupWindow,
        window_text: str,
        sentence: Sentence | None,
        sentence_text: str,
    ) -> list[LookupHit]:
        """Find terms in one window.

        Args:
            window: The lookup window span (absolute offsets).
            window_text: The text covered by ``window``.
            sentence: The sentence containing the window, if any.
            sentence_text: The text covered by ``sentence`` (empty when
                ``sentence`` is None).

        Returns:
            Hits whose offsets lie within the window. An empty list when no
            term matches.
        """


class LexicalNormalizerInterface(ABC):
    """Map a word to its normalized base form."""

    @abstractmethod
    async def normalize(self, word: str) -> str:
        """Return the base form of ``word`` (e.g. 'pains' -> 'pain')."""
