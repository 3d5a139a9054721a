"""Tests for AnnotationGraph storage, ordering and queries."""

import pytest

from clinspan.graph import AnnotationGraph
from clinspan.span import Chunk, Mention, Sentence, Token

TEXT = "Patient denies chest pain."


@pytest.fixture
def graph() -> AnnotationGraph:
    return AnnotationGraph(TEXT)


class TestAddRemove:
    """Tests for inserting and deleting spans."""

    def test_add_assigns_increasing_ids(self, graph: AnnotationGraph) -> None:
        first = graph.add(Token(begin=0, end=7))
        second = graph.add(Token(begin=8, end=14))
        assert first.span_id is not None and second.span_id is not None
        assert second.span_id > first.span_id
        assert len(graph) == 2

    def test_add_outside_text_rejected(self, graph: AnnotationGraph) -> None:
        with pytest.raises(ValueError):
            graph.add(Token(begin=20, end=len(TEXT) + 1))

    def test_remove(self, graph: AnnotationGraph) -> None:
        token = graph.add(Token(begin=0, end=7))
        graph.remove(token)
        assert token not in graph
        assert graph.select(Token) == []

    def test_remove_unknown_span_raises(self, graph: AnnotationGraph) -> None:
        with pytest.raises(KeyError):
            graph.remove(Token(begin=0, end=7))

    def test_replace_keeps_id(self, graph: AnnotationGraph) -> None:
        token = graph.add(Token(begin=0, end=7))
        tagged = graph.replace(token, token.model_copy(update={"part_of_speech": "NN"}))
        assert tagged.span_id == token.span_id
        assert graph.select(Token) == [tagged]
        assert token not in graph

    def test_replace_with_other_type_rejected(self, graph: AnnotationGraph) -> None:
        token = graph.add(Token(begin=0, end=7))
        with pytest.raises(TypeError):
            graph.replace(token, Chunk(begin=0, end=7, chunk_type="NP"))


class TestOrdering:
    """Tests for document-order iteration."""

    def test_select_orders_by_begin_then_end_then_insertion(self, graph: AnnotationGraph) -> None:
        late = graph.add(Chunk(begin=15, end=25, chunk_type="NP"))
        wide = graph.add(Chunk(begin=0, end=14, chunk_type="NP"))
        narrow = graph.add(Chunk(begin=0, end=7, chunk_type="NP"))
        twin = graph.add(Chunk(begin=0, end=7, chunk_type="ADJP"))
        assert graph.select(Chunk) == [narrow, twin, wide, late]

    def test_spans_break_ties_on_type_priority(self, graph: AnnotationGraph) -> None:
        mention = graph.add(Mention(begin=15, end=25))
        token = graph.add(Token(begin=15, end=25))
        sentence = graph.add(Sentence(begin=0, end=26))
        assert list(graph.spans()) == [sentence, token, mention]

    def test_select_only_returns_requested_type(self, graph: AnnotationGraph) -> None:
        graph.add(Sentence(begin=0, end=26))
        token = graph.add(Token(begin=0, end=7))
        assert graph.select(Token) == [token]
        assert graph.type_counts() == {"Sentence": 1, "Token": 1}


class TestQueries:
    """Tests for containment queries and covered text."""

    def test_select_covered_and_covering(self, graph: AnnotationGraph) -> None:
        sentence = graph.add(Sentence(begin=0, end=26))
        chest = graph.add(Token(begin=15, end=20))
        pain = graph.add(Token(begin=21, end=25))
        np = graph.add(Chunk(begin=15, end=25, chunk_type="NP"))
        assert graph.select_covered(Token, np) == [chest, pain]
        assert graph.select_covering(Sentence, np) == [sentence]
        assert graph.select_covering(Chunk, chest) == [np]

    def test_covered_text(self, graph: AnnotationGraph) -> None:
        np = graph.add(Chunk(begin=15, end=25, chunk_type="NP"))
        assert graph.covered_text(np) == "chest pain"
