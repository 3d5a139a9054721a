"""Test fixtures and mock collaborators.

This module provides:
- Mock implementations of the collaborator interfaces (a term-table resolver,
  a fixed-output chunker, a tokenizer that fails on demand)
- Helpers that build an annotation graph by running a list of stages
- Pytest fixtures for a small BSV dictionary, a matching config and the
  default stage chain built from it

The sample dictionary carries "chest pain" with a blank TUI, so it resolves to
a plain EntityMention; the canonical note "Patient denies chest pain." yields
``-C0008031|chest_pain|EntityMention``.
"""

from pathlib import Path
from typing import Sequence

import pytest

from clinspan.config import PipelineConfig
from clinspan.document import ClinicalDocument
from clinspan.graph import AnnotationGraph
from clinspan.pipeline.chain import StageChain, build_chain
from clinspan.pipeline.interfaces import (
    ChunkerInterface,
    DictionaryResolverInterface,
    LookupHit,
    TokenizerInterface,
)
from clinspan.pipeline.models import (
    LexiconPosTagger,
    PTBTokenizer,
    RegexSentenceModel,
    RuleChunker,
)
from clinspan.pipeline.stages import (
    AnnotationStage,
    ChunkStage,
    PosTagStage,
    SegmentStage,
    SentenceStage,
    TokenizeStage,
    TokenMergeStage,
)
from clinspan.span import LookupWindow, Polarity, Sentence, TokenKind, UmlsConcept

SAMPLE_DICTIONARY = """\
# CUI|TUI|term[|codes]
C0008031||chest pain
C0030193|T184|pain
C0013404|T184|shortness of breath
C0004057|T121|aspirin|RXNORM=1191;SNOMEDCT_US=387458008
C0011849|T047|diabetes
C0020538|T047|hypertension
"""

CHEST_PAIN_NOTE = "Patient denies chest pain."


# --- Mock collaborators ---


class MockDictionaryResolver(DictionaryResolverInterface):
    """Resolve exact (case-insensitive) occurrences of known terms in a window.

    ``terms`` maps a term to ``(mention_type, cui)``. Every hit is positive
    unless the term is listed in ``negated``.
    """

    def __init__(self, terms: dict[str, tuple[str, str]], negated: Sequence[str] = ()):
        self.terms = terms
        self.negated = set(negated)
        self.calls: list[str] = []

    async def lookup(
        self,
        window: LookupWindow,
        window_text: str,
        sentence: Sentence | None,
        sentence_text: str,
    ) -> list[LookupHit]:
        self.calls.append(window_text)
        hits = []
        lowered = window_text.lower()
        for term, (mention_type, cui) in self.terms.items():
            offset = lowered.find(term)
            if offset < 0:
                continue
            hits.append(
                LookupHit(
                    begin=window.begin + offset,
                    end=window.begin + offset + len(term),
                    mention_type=mention_type,
                    polarity=Polarity.NEGATED if term in self.negated else Polarity.POSITIVE,
                    concepts=(UmlsConcept(cui=cui),),
                )
            )
        return hits


class OutOfWindowResolver(DictionaryResolverInterface):
    """Return a hit that ends past its window."""

    async def lookup(self, window, window_text, sentence, sentence_text) -> list[LookupHit]:
        return [LookupHit(begin=window.begin, end=window.end + 1, concepts=(UmlsConcept(cui="C0000001"),))]


class FixedChunker(ChunkerInterface):
    """Return the same chunk triples for every sentence."""

    def __init__(self, chunks: list[tuple[int, int, str]]):
        self.chunks = chunks

    async def chunk(self, words: Sequence[str], tags: Sequence[str]) -> list[tuple[int, int, str]]:
        return list(self.chunks)


class FailingTokenizer(TokenizerInterface):
    """Tokenizer that raises when the text contains a trigger word."""

    def __init__(self, trigger: str = "explode"):
        self.trigger = trigger
        self._inner = PTBTokenizer()

    async def tokenize(self, text: str, begin: int, end: int) -> list[tuple[int, int, TokenKind]]:
        if self.trigger in text[begin:end]:
            raise RuntimeError(f"tokenizer model crashed on {self.trigger!r}")
        return await self._inner.tokenize(text, begin, end)


# --- Helpers ---


def make_document(text: str, document_id: str = "note.txt") -> ClinicalDocument:
    return ClinicalDocument.from_text(text, document_id=document_id)


async def run_stages(text: str, stages: Sequence[AnnotationStage]) -> AnnotationGraph:
    """Run ``stages`` in order over a fresh graph for ``text``."""
    document = make_document(text)
    graph = AnnotationGraph(document.text)
    for stage in stages:
        graph = await stage.process(document, graph)
    return graph


def syntax_stages(chunker: ChunkerInterface | None = None) -> list[AnnotationStage]:
    """The stages up to and including chunking, with the rule-based models."""
    return [
        SegmentStage(),
        SentenceStage(RegexSentenceModel()),
        TokenizeStage(PTBTokenizer()),
        TokenMergeStage(),
        PosTagStage(LexiconPosTagger()),
        ChunkStage(chunker or RuleChunker()),
    ]


# --- Fixtures ---


@pytest.fixture
def dictionary_file(tmp_path: Path) -> Path:
    path = tmp_path / "terms.bsv"
    path.write_text(SAMPLE_DICTIONARY, encoding="utf-8")
    return path


@pytest.fixture
def pipeline_config(dictionary_file: Path) -> PipelineConfig:
    return PipelineConfig(dictionary_path=dictionary_file)


@pytest.fixture
def chain(pipeline_config: PipelineConfig) -> StageChain:
    """The default twelve-stage chain over the sample dictionary."""
    return build_chain(pipeline_config)


@pytest.fixture
def mock_resolver() -> MockDictionaryResolver:
    return MockDictionaryResolver(
        {
            "chest pain": ("EntityMention", "C0008031"),
            "fever": ("SignSymptomMention", "C0015967"),
        }
    )
