"""Per-document annotation graph.

The graph is an arena of spans keyed by a stable integer id, with one secondary
index per span type for same-kind iteration. One graph belongs to exactly one
document; it is never shared between documents or worker tasks.

Iteration order for a span type is ascending ``begin``, then ascending ``end``,
then insertion order. Iteration across types (``spans()``) additionally breaks
ties on the type priority (Segment < Sentence < Token < Chunk < LookupWindow <
Mention).
"""

from itertools import count
from typing import Iterator, TypeVar

from clinspan.span import Span

S = TypeVar("S", bound=Span)


def _order_key(span: Span) -> tuple[int, int, int, int]:
    return (span.begin, span.end, span.priority, span.span_id or 0)


class AnnotationGraph:
    """Mutable container of immutable spans over one document text.

    Example:
        ```python
        graph = AnnotationGraph(text)
        sentence = graph.add(Sentence(begin=0, end=26))
        for token in graph.select_covered(Token, sentence):
            ...
        ```
    """

    def __init__(self, text: str) -> None:
        self._text = text
        self._spans: dict[int, Span] = {}
        self._by_type: dict[str, set[int]] = {}
        self._ids = count(1)

    @property
    def text(self) -> str:
        return self._text

    def __len__(self) -> int:
        return len(self._spans)

    def __contains__(self, span: object) -> bool:
        return isinstance(span, Span) and span.span_id is not None and self._spans.get(span.span_id) == span

    def add(self, span: S) -> S:
        """Insert a span and return the stored copy carrying its ``span_id``.

        Raises:
            ValueError: If the span lies outside the document text.
        """
        if span.end > len(self._text):
            raise ValueError(
                f"{span.type_name} [{span.begin}, {span.end}) exceeds text length {len(self._text)}"
            )
        stored = span.model_copy(update={"span_id": next(self._ids)})
        self._spans[stored.span_id] = stored  # type: ignore[index]
        self._by_type.setdefault(stored.type_name, set()).add(stored.span_id)  # type: ignore[arg-type]
        return stored

    def remove(self, span: Span) -> None:
        """Delete a span from the graph.

        Raises:
            KeyError: If the span is not part of this graph.
        """
        if span.span_id is None or span.span_id not in self._spans:
            raise KeyError(f"{span.type_name} {span.bounds} is not in this graph")
        del self._spans[span.span_id]
        self._by_type[span.type_name].discard(span.span_id)

    def replace(self, old: S, new: S) -> S:
        """Swap ``old`` for ``new``, keeping the old span id.

        Used to attach attributes (part of speech, normalized form) to a span
        that earlier stages have already read.
        """
        if old.span_id is None or old.span_id not in self._spans:
            raise KeyError(f"{old.type_name} {old.bounds} is not in this graph")
        if type(new) is not type(old):
            raise TypeError(f"cannot replace {old.type_name} with {new.type_name}")
        if new.end > len(self._text):
            raise ValueError(f"{new.type_name} [{new.begin}, {new.end}) exceeds text length {len(self._text)}")
        stored = new.model_copy(update={"span_id": old.span_id})
        self._spans[old.span_id] = stored
        return stored

    def get(self, span_id: int) -> Span | None:
        return self._spans.get(span_id)

    def select(self, span_type: type[S]) -> list[S]:
        """Return every span of ``span_type`` in document order."""
        ids = self._by_type.get(span_type.type_name, ())
        return sorted((self._spans[i] for i in ids), key=_order_key)  # type: ignore[misc]

    def select_covered(self, span_type: type[S], container: Span) -> list[S]:
        """Return spans of ``span_type`` lying within ``container``, in document order."""
        return [s for s in self.select(span_type) if container.contains(s)]

    def select_covering(self, span_type: type[S], inner: Span) -> list[S]:
        """Return spans of ``span_type`` that contain ``inner``, in document order."""
        return [s for s in self.select(span_type) if s.contains(inner)]

    def spans(self) -> Iterator[Span]:
        """Iterate over all spans of every type in document order."""
        yield from sorted(self._spans.values(), key=_order_key)

    def covered_text(self, span: Span) -> str:
        return self._text[span.begin : span.end]

    def type_counts(self) -> dict[str, int]:
        return {name: len(ids) for name, ids in sorted(self._by_type.items()) if ids}
