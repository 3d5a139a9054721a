"""Tests for the span and ontology concept models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from clinspan.span import (
    DEFAULT_MENTION_KIND,
    Chunk,
    CodedConcept,
    Mention,
    MentionKind,
    OntologyConcept,
    Polarity,
    Sentence,
    Token,
    UmlsConcept,
)


class TestSpanBounds:
    """Tests for offset validation shared by every span variant."""

    def test_end_before_begin_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Sentence(begin=5, end=4)

    def test_negative_offset_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Token(begin=-1, end=3)

    def test_empty_span_allowed(self) -> None:
        assert len(Sentence(begin=3, end=3)) == 0

    def test_contains(self) -> None:
        outer = Chunk(begin=0, end=10, chunk_type="NP")
        assert outer.contains(Token(begin=0, end=10))
        assert outer.contains(Token(begin=2, end=5))
        assert not outer.contains(Token(begin=8, end=11))

    def test_spans_are_frozen(self) -> None:
        token = Token(begin=0, end=3)
        with pytest.raises(ValidationError):
            token.begin = 1  # type: ignore[misc]


class TestMention:
    """Tests for mention kind inference and polarity."""

    def test_kind_inferred_from_known_type(self) -> None:
        assert Mention(begin=0, end=4, mention_type="DiseaseDisorderMention").kind is MentionKind.EVENT
        assert Mention(begin=0, end=4, mention_type="AnatomicalSiteMention").kind is MentionKind.ENTITY
        assert Mention(begin=0, end=4).kind is MentionKind.ENTITY

    def test_unknown_type_defaults_to_event(self) -> None:
        assert Mention(begin=0, end=4, mention_type="DeviceMention").kind is DEFAULT_MENTION_KIND
        assert DEFAULT_MENTION_KIND is MentionKind.EVENT
        mention = Mention(begin=0, end=4, mention_type="DeviceMention", kind=MentionKind.ENTITY)
        assert mention.kind is MentionKind.ENTITY

    def test_default_polarity_is_positive(self) -> None:
        assert Mention(begin=0, end=4).polarity.is_positive

    @pytest.mark.parametrize("polarity", [Polarity.NEGATED, Polarity.UNCERTAIN])
    def test_non_positive_polarities(self, polarity: Polarity) -> None:
        assert not polarity.is_positive


class TestOntologyConcept:
    """Tests for the tagged concept union."""

    def test_discriminates_on_scheme_kind(self) -> None:
        adapter = TypeAdapter(OntologyConcept)
        umls = adapter.validate_python({"scheme_kind": "umls", "cui": "C0008031"})
        coded = adapter.validate_python({"scheme_kind": "coded", "coding_scheme": "RXNORM", "code": "1191"})
        assert isinstance(umls, UmlsConcept)
        assert isinstance(coded, CodedConcept)

    def test_mention_round_trips_concepts_through_json(self) -> None:
        mention = Mention(
            begin=0,
            end=7,
            mention_type="MedicationMention",
            concepts=(UmlsConcept(cui="C0004057"), CodedConcept(coding_scheme="RXNORM", code="1191")),
        )
        restored = Mention.model_validate_json(mention.model_dump_json())
        assert restored == mention

    def test_empty_cui_rejected(self) -> None:
        with pytest.raises(ValidationError):
            UmlsConcept(cui="")
