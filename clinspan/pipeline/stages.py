"""Annotation stages.

Each stage reads the span kinds produced by the stages before it and adds (or,
for overlap resolution, deletes) spans of its own kind. Stages hold only
read-only collaborators, so one stage instance serves every document.

Stage order, as assembled by :func:`clinspan.pipeline.chain.default_stages`:

    segment -> sentence -> token -> token-merge -> pos -> chunk
    -> chunk-adjust (NP NP) -> chunk-adjust (NP PP NP)
    -> lookup-window -> overlap-resolve -> concept-lookup -> lexical-normalize
"""

import re
from abc import ABC, abstractmethod
from typing import Iterable, Sequence

import numpy as np

from clinspan.document import ClinicalDocument
from clinspan.graph import AnnotationGraph
from clinspan.pipeline.interfaces import (
    ChunkerInterface,
    DictionaryResolverInterface,
    LexicalNormalizerInterface,
    PosTaggerInterface,
    SentenceModelInterface,
    TokenizerInterface,
)
from clinspan.pipeline.models import DEFAULT_ABBREVIATIONS
from clinspan.span import Chunk, LookupWindow, Mention, Segment, Sentence, Token, TokenKind


class AnnotationStage(ABC):
    """One pass over a document's annotation graph."""

    name: str = "stage"

    @abstractmethod
    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        """Annotate ``graph`` in place and return it.

        Raises:
            Exception: Any failure; the chain reports it as a StageError for
                this document.
        """

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class SegmentStage(AnnotationStage):
    """Partition the text into segments that together cover all of it.

    Without header patterns the whole note is one ``SIMPLE_SEGMENT``. With
    patterns, every line matching one starts a new segment whose id is the
    header text upper-cased with non-alphanumerics collapsed to ``_``.
    """

    name = "segment"

    def __init__(self, section_patterns: Iterable[str] = ()):
        self._patterns = [re.compile(p, re.IGNORECASE | re.MULTILINE) for p in section_patterns]

    def _headers(self, text: str) -> list[tuple[int, str]]:
        found: dict[int, str] = {}
        for pattern in self._patterns:
            for match in pattern.finditer(text):
                label = re.sub(r"[^0-9A-Za-z]+", "_", match.group().strip()).strip("_").upper()
                found.setdefault(match.start(), label or "SEGMENT")
        return sorted(found.items())

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        text = graph.text
        starts: list[tuple[int, str]] = [(0, "SIMPLE_SEGMENT")]
        for offset, label in self._headers(text):
            if offset == 0:
                starts[0] = (0, label)
            else:
                starts.append((offset, label))
        for (begin, label), (end, _) in zip(starts, starts[1:] + [(len(text), "")]):
            graph.add(Segment(begin=begin, end=end, segment_id=label))
        return graph


class SentenceStage(AnnotationStage):
    name = "sentence"

    def __init__(self, model: SentenceModelInterface):
        self.model = model

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        number = 0
        last_end = 0
        for segment in graph.select(Segment):
            for begin, end in await self.model.detect(graph.text, segment.begin, segment.end):
                if begin < segment.begin or end > segment.end:
                    raise ValueError(f"sentence [{begin}, {end}) escapes segment {segment.bounds}")
                if begin < last_end:
                    raise ValueError(f"sentence [{begin}, {end}) overlaps the previous sentence")
                graph.add(Sentence(begin=begin, end=end, sentence_number=number))
                number += 1
                last_end = end
        return graph


class TokenizeStage(AnnotationStage):
    name = "token"

    def __init__(self, tokenizer: TokenizerInterface):
        self.tokenizer = tokenizer

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        number = 0
        for sentence in graph.select(Sentence):
            for begin, end, kind in await self.tokenizer.tokenize(graph.text, sentence.begin, sentence.end):
                if begin < sentence.begin or end > sentence.end:
                    raise ValueError(f"token [{begin}, {end}) escapes sentence {sentence.bounds}")
                graph.add(Token(begin=begin, end=end, kind=kind, token_number=number))
                number += 1
        return graph


def merge_token_runs(
    text: str,
    tokens: Sequence[Token],
    abbreviations: frozenset[str] = DEFAULT_ABBREVIATIONS,
) -> list[tuple[int, int, TokenKind]]:
    """Group adjacent tokens that belong together.

    Returns ``(first_index, last_index_exclusive, kind)`` for every run of two
    or more tokens to merge:

    - numbers joined by ``.``, ``/`` or ``:`` with no spaces (``3.5``,
      ``120/80``, ``10:30``);
    - dotted initialisms of at least two letters (``b.i.d.``, ``e.g.``);
    - a known abbreviation followed by its period (``Dr.``, ``mg.``).
    """

    def word(i: int) -> str:
        return text[tokens[i].begin : tokens[i].end]

    def touching(i: int) -> bool:
        return i + 1 < len(tokens) and tokens[i].end == tokens[i + 1].begin

    runs: list[tuple[int, int, TokenKind]] = []
    i = 0
    while i < len(tokens):
        if tokens[i].kind is TokenKind.NUMBER:
            j = i
            while (
                j + 2 < len(tokens)
                and touching(j)
                and touching(j + 1)
                and word(j + 1) in (".", "/", ":")
                and tokens[j + 2].kind is TokenKind.NUMBER
            ):
                j += 2
            if j > i:
                runs.append((i, j + 1, TokenKind.NUMBER))
                i = j + 1
                continue
        if tokens[i].kind is TokenKind.WORD:
            j, pairs = i, 0
            while (
                j + 1 < len(tokens)
                and tokens[j].kind is TokenKind.WORD
                and len(word(j)) <= 2
                and word(j).isalpha()
                and touching(j)
                and word(j + 1) == "."
                and (j == i or tokens[j - 1].end == tokens[j].begin)
            ):
                pairs += 1
                j += 2
            if pairs >= 2:
                if j < len(tokens) and tokens[j - 1].end == tokens[j].begin and tokens[j].kind is TokenKind.WORD and len(word(j)) <= 2:
                    j += 1
                runs.append((i, j, TokenKind.WORD))
                i = j
                continue
            if word(i).lower() in abbreviations and touching(i) and word(i + 1) == ".":
                runs.append((i, i + 2, TokenKind.WORD))
                i += 2
                continue
        i += 1
    return runs


class TokenMergeStage(AnnotationStage):
    """Context-dependent token merging, one sentence at a time."""

    name = "token-merge"

    def __init__(self, abbreviations: Iterable[str] = DEFAULT_ABBREVIATIONS):
        self.abbreviations = frozenset(a.lower() for a in abbreviations)

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        merged_any = False
        for sentence in graph.select(Sentence):
            tokens = graph.select_covered(Token, sentence)
            for first, last, kind in merge_token_runs(graph.text, tokens, self.abbreviations):
                for token in tokens[first:last]:
                    graph.remove(token)
                graph.add(
                    Token(
                        begin=tokens[first].begin,
                        end=tokens[last - 1].end,
                        kind=kind,
                        token_number=tokens[first].token_number,
                    )
                )
                merged_any = True
        if merged_any:
            for number, token in enumerate(graph.select(Token)):
                if token.token_number != number:
                    graph.replace(token, token.model_copy(update={"token_number": number}))
        return graph


class PosTagStage(AnnotationStage):
    name = "pos"

    def __init__(self, tagger: PosTaggerInterface):
        self.tagger = tagger

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        for sentence in graph.select(Sentence):
            tokens = graph.select_covered(Token, sentence)
            if not tokens:
                continue
            tags = await self.tagger.tag([graph.covered_text(t) for t in tokens])
            if len(tags) != len(tokens):
                raise ValueError(f"tagger returned {len(tags)} tags for {len(tokens)} tokens")
            for token, tag in zip(tokens, tags):
                graph.replace(token, token.model_copy(update={"part_of_speech": tag}))
        return graph


class ChunkStage(AnnotationStage):
    name = "chunk"

    def __init__(self, chunker: ChunkerInterface):
        self.chunker = chunker

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        for sentence in graph.select(Sentence):
            tokens = graph.select_covered(Token, sentence)
            if not tokens:
                continue
            if any(t.part_of_speech is None for t in tokens):
                raise ValueError(f"sentence {sentence.sentence_number} has untagged tokens")
            words = [graph.covered_text(t) for t in tokens]
            previous = 0
            for first, last, label in await self.chunker.chunk(words, [t.part_of_speech for t in tokens]):  # type: ignore[misc]
                if not (previous <= first < last <= len(tokens)):
                    raise ValueError(f"chunk token range [{first}, {last}) is invalid or overlapping")
                graph.add(Chunk(begin=tokens[first].begin, end=tokens[last - 1].end, chunk_type=label))
                previous = last
        return graph


class ChunkAdjustStage(AnnotationStage):
    """Extend the first chunk of every match of a chunk-type pattern.

    For ``pattern=("NP", "PP", "NP")`` and ``extend_to_include=2``, the first
    NP of each "NP PP NP" run within a sentence is replaced by an NP reaching
    to the end of the second NP. The replaced chunk stays in the graph marked
    ``superseded``; the chunks it now covers are left as they are.
    """

    def __init__(self, pattern: Sequence[str], extend_to_include: int):
        if not pattern:
            raise ValueError("chunk pattern must not be empty")
        if not 0 < extend_to_include < len(pattern):
            raise ValueError(f"extend_to_include must be between 1 and {len(pattern) - 1}")
        self.pattern = tuple(pattern)
        self.extend_to_include = extend_to_include
        self.name = "chunk-adjust:" + " ".join(self.pattern)

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        n = len(self.pattern)
        for sentence in graph.select(Sentence):
            chunks = [c for c in graph.select_covered(Chunk, sentence) if not c.superseded]
            for i in range(len(chunks) - n + 1):
                if tuple(c.chunk_type for c in chunks[i : i + n]) != self.pattern:
                    continue
                first = chunks[i]
                graph.replace(first, first.model_copy(update={"superseded": True}))
                chunks[i] = graph.add(
                    Chunk(begin=first.begin, end=chunks[i + self.extend_to_include].end, chunk_type=first.chunk_type)
                )
        return graph


class LookupWindowStage(AnnotationStage):
    """Copy every live chunk of the window type (NP) to a LookupWindow."""

    name = "lookup-window"

    def __init__(self, chunk_type: str = "NP"):
        self.chunk_type = chunk_type

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        for chunk in graph.select(Chunk):
            if chunk.chunk_type == self.chunk_type and not chunk.superseded:
                graph.add(LookupWindow(begin=chunk.begin, end=chunk.end))
        return graph


def contained_windows(windows: Sequence[LookupWindow]) -> list[LookupWindow]:
    """Return the windows enveloped by another window.

    Window B is enveloped by a different window A when
    ``A.begin <= B.begin and B.end <= A.end``. Of several windows with the same
    bounds only the first inserted is kept.
    """
    if len(windows) < 2:
        return []
    begins = np.array([w.begin for w in windows])
    ends = np.array([w.end for w in windows])
    ids = np.array([w.span_id or 0 for w in windows])
    # Sorted by begin, then longest first, then insertion order: a window is
    # enveloped exactly when some earlier window in this order reaches its end.
    order = np.lexsort((ids, -ends, begins))
    sorted_ends = ends[order]
    reach = np.empty_like(sorted_ends)
    reach[0] = -1
    reach[1:] = np.maximum.accumulate(sorted_ends)[:-1]
    doomed = np.zeros(len(windows), dtype=bool)
    doomed[order] = sorted_ends <= reach
    return [w for w, d in zip(windows, doomed) if d]


class OverlapResolveStage(AnnotationStage):
    name = "overlap-resolve"

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        for window in contained_windows(graph.select(LookupWindow)):
            graph.remove(window)
        return graph


class ConceptLookupStage(AnnotationStage):
    """Turn dictionary hits in each lookup window into Mention spans.

    A hit repeated by overlapping windows (same bounds and mention type) is
    added once.
    """

    name = "concept-lookup"

    def __init__(self, resolver: DictionaryResolverInterface):
        self.resolver = resolver

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        seen: set[tuple[int, int, str]] = set()
        for window in graph.select(LookupWindow):
            covering = graph.select_covering(Sentence, window)
            sentence = covering[0] if covering else None
            sentence_text = graph.covered_text(sentence) if sentence else ""
            hits = await self.resolver.lookup(window, graph.covered_text(window), sentence, sentence_text)
            for hit in hits:
                if not window.contains(hit):  # type: ignore[arg-type]
                    raise ValueError(f"hit [{hit.begin}, {hit.end}) lies outside window {window.bounds}")
                key = (hit.begin, hit.end, hit.mention_type)
                if key in seen:
                    continue
                seen.add(key)
                graph.add(
                    Mention(
                        begin=hit.begin,
                        end=hit.end,
                        mention_type=hit.mention_type,
                        kind=hit.kind,
                        polarity=hit.polarity,
                        concepts=hit.concepts,
                    )
                )
        return graph


class LexicalNormalizeStage(AnnotationStage):
    name = "lexical-normalize"

    def __init__(self, normalizer: LexicalNormalizerInterface):
        self.normalizer = normalizer

    async def process(self, document: ClinicalDocument, graph: AnnotationGraph) -> AnnotationGraph:
        for token in graph.select(Token):
            if token.kind is TokenKind.WORD:
                normalized = await self.normalizer.normalize(graph.covered_text(token))
                graph.replace(token, token.model_copy(update={"normalized_form": normalized}))
        return graph
