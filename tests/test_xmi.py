"""Tests for XMI serialization and reading."""

import xml.etree.ElementTree as ET
from pathlib import Path

import pytest

from clinspan.document import ClinicalDocument
from clinspan.errors import SerializationError
from clinspan.extract import extract_codes
from clinspan.graph import AnnotationGraph
from clinspan.pipeline.chain import StageChain
from clinspan.span import Chunk, CodedConcept, Mention, MentionKind, Polarity, Token, UmlsConcept
from clinspan.xmi import NAMESPACES, read_xmi, serialize_xmi, write_xmi

from tests.conftest import CHEST_PAIN_NOTE, make_document

CTAKES_XMI = """<?xml version="1.0" encoding="UTF-8"?>
<xmi:XMI xmlns:xmi="http://www.omg.org/XMI" xmlns:cas="http:///uima/cas.ecore"
    xmlns:textsem="http:///org/apache/ctakes/typesystem/type/textsem.ecore"
    xmlns:refsem="http:///org/apache/ctakes/typesystem/type/refsem.ecore"
    xmlns:syntax="http:///org/apache/ctakes/typesystem/type/syntax.ecore"
    xmlns:textspan="http:///org/apache/ctakes/typesystem/type/textspan.ecore" xmi:version="2.0">
  <cas:NULL xmi:id="0"/>
  <cas:Sofa xmi:id="1" sofaNum="1" sofaID="_InitialView" mimeType="text" sofaString="No fever."/>
  <cas:Sofa xmi:id="2" sofaNum="2" sofaID="UriView" sofaString="file:///data/notes/report%2001.txt"/>
  <textspan:Sentence xmi:id="10" sofa="1" begin="0" end="9" sentenceNumber="0"/>
  <syntax:NewlineToken xmi:id="11" sofa="1" begin="9" end="9"/>
  <textsem:SignSymptomMention xmi:id="12" sofa="1" begin="3" end="8" polarity="-1" uncertainty="0"
      ontologyConceptArr="20"/>
  <textsem:DateAnnotation xmi:id="13" sofa="1" begin="0" end="2"/>
  <cas:FSArray xmi:id="20" elements="21 22"/>
  <refsem:UmlsConcept xmi:id="21" codingScheme="SNOMEDCT_US" code="386661006" cui="C0015967" tui="T184"/>
  <refsem:OntologyConcept xmi:id="22" codingScheme="ICD10CM" code="R50.9"/>
  <cas:View sofa="1" members="10 11 12 13"/>
</xmi:XMI>
"""


MIXED_POLARITY_XMI = """<?xml version="1.0" encoding="UTF-8"?>
<xmi:XMI xmlns:xmi="http://www.omg.org/XMI" xmlns:cas="http:///uima/cas.ecore"
    xmlns:textsem="http:///org/apache/ctakes/typesystem/type/textsem.ecore"
    xmlns:refsem="http:///org/apache/ctakes/typesystem/type/refsem.ecore" xmi:version="2.0">
  <cas:NULL xmi:id="0"/>
  <cas:Sofa xmi:id="1" sofaNum="1" sofaID="_InitialView" mimeType="text" sofaString="Fever and cough. Rash."/>
  <textsem:SignSymptomMention xmi:id="10" sofa="1" begin="0" end="5" polarity="0" uncertainty="0"
      ontologyConceptArr="20"/>
  <textsem:SignSymptomMention xmi:id="11" sofa="1" begin="10" end="15" polarity="1" uncertainty="1"
      ontologyConceptArr="21"/>
  <textsem:SignSymptomMention xmi:id="12" sofa="1" begin="17" end="21" ontologyConceptArr="22"/>
  <refsem:UmlsConcept xmi:id="20" cui="C0015967"/>
  <refsem:UmlsConcept xmi:id="21" cui="C0010200"/>
  <refsem:UmlsConcept xmi:id="22" cui="C0015230"/>
  <cas:View sofa="1" members="10 11 12"/>
</xmi:XMI>
"""


@pytest.fixture
def canonical(chain: StageChain):
    """Return a coroutine function running the default chain over the canonical note."""

    async def _run() -> tuple[ClinicalDocument, AnnotationGraph]:
        document = make_document(CHEST_PAIN_NOTE)
        return document, await chain.run(document)

    return _run


class TestWriteXmi:
    """Tests for writing graphs as XMI."""

    async def test_round_trip_preserves_graph(self, canonical, tmp_path: Path) -> None:
        document, graph = await canonical()
        path = write_xmi(document, graph, tmp_path / "out" / "xmi")
        assert path == tmp_path / "out" / "xmi" / "note.txt.xmi"

        restored_document, restored = read_xmi(path)
        assert restored_document.document_id == "note.txt"
        assert restored.text == CHEST_PAIN_NOTE
        assert restored.type_counts() == graph.type_counts()
        assert extract_codes(restored) == extract_codes(graph) == ["-C0008031|chest_pain|EntityMention"]
        assert [t.normalized_form for t in restored.select(Token)] == [
            t.normalized_form for t in graph.select(Token)
        ]

    def test_zero_mention_document_still_written(self, tmp_path: Path) -> None:
        document = make_document("Nothing here.", document_id="empty.txt")
        path = write_xmi(document, AnnotationGraph(document.text), tmp_path)
        root = ET.parse(path).getroot()
        sofas = root.findall(f"{{{NAMESPACES['cas']}}}Sofa")
        assert [s.get("sofaString") for s in sofas] == ["Nothing here."]

    def test_polarity_and_concepts_round_trip(self, tmp_path: Path) -> None:
        text = "Possible aspirin allergy. Gadget."
        document = ClinicalDocument(document_id="meds.txt", text=text, source_uri="file:///notes/meds.txt")
        graph = AnnotationGraph(text)
        graph.add(
            Mention(
                begin=9,
                end=16,
                mention_type="MedicationMention",
                polarity=Polarity.UNCERTAIN,
                concepts=(UmlsConcept(cui="C0004057", tui="T121"), CodedConcept(coding_scheme="RXNORM", code="1191")),
            )
        )
        graph.add(Mention(begin=26, end=32, mention_type="DeviceMention", kind=MentionKind.ENTITY))
        graph.add(Chunk(begin=0, end=16, chunk_type="NP", superseded=True))
        restored_document, restored = read_xmi(write_xmi(document, graph, tmp_path))

        assert restored_document.source_uri == "file:///notes/meds.txt"
        medication, device = restored.select(Mention)
        assert medication.polarity is Polarity.UNCERTAIN
        assert medication.concepts == graph.select(Mention)[0].concepts
        assert device.kind is MentionKind.ENTITY
        assert restored.select(Chunk)[0].superseded

    def test_multiline_text_survives(self, tmp_path: Path) -> None:
        text = "Line one.\r\nLine\ttwo.\n"
        document = make_document(text)
        _, restored = read_xmi(write_xmi(document, AnnotationGraph(text), tmp_path))
        assert restored.text == text

    def test_control_character_raises(self) -> None:
        document = make_document("bad \x07 bell")
        with pytest.raises(SerializationError):
            serialize_xmi(document, AnnotationGraph(document.text))


class TestReadXmi:
    """Tests for reading XMI written elsewhere."""

    def test_reads_ctakes_style_xmi(self, tmp_path: Path) -> None:
        path = tmp_path / "whatever.xmi"
        path.write_text(CTAKES_XMI, encoding="utf-8")
        document, graph = read_xmi(path)
        assert document.document_id == "report 01.txt"
        [mention] = graph.select(Mention)
        assert mention.polarity is Polarity.NEGATED
        assert mention.kind is MentionKind.EVENT
        assert graph.select(Token) == []
        assert extract_codes(graph) == [
            "-C0015967|fever|SignSymptomMention",
            "-ICD10CMR50.9|fever|SignSymptomMention",
        ]

    def test_name_falls_back_to_file_name(self, tmp_path: Path) -> None:
        path = tmp_path / "note.txt.xmi"
        path.write_text(CTAKES_XMI.replace('sofaID="UriView"', 'sofaID="OtherView"'), encoding="utf-8")
        document, _ = read_xmi(path)
        assert document.document_id == "note.txt"

    def test_not_xml_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "broken.xmi"
        path.write_text("<xmi:XMI", encoding="utf-8")
        with pytest.raises(SerializationError):
            read_xmi(path)

    def test_missing_text_sofa_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "nosofa.xmi"
        path.write_text('<?xml version="1.0"?><root/>', encoding="utf-8")
        with pytest.raises(SerializationError):
            read_xmi(path)

    def test_foreign_polarity_is_positive_only_above_zero(self, tmp_path: Path) -> None:
        path = tmp_path / "mixed.txt.xmi"
        path.write_text(MIXED_POLARITY_XMI, encoding="utf-8")
        _, graph = read_xmi(path)
        assert [m.polarity for m in graph.select(Mention)] == [Polarity.NEGATED, Polarity.POSITIVE, Polarity.NEGATED]
        assert extract_codes(graph) == [
            "-C0015967|fever|SignSymptomMention",
            "C0010200|cough|SignSymptomMention",
            "-C0015230|rash|SignSymptomMention",
        ]

    def test_unknown_assertion_raises(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.txt.xmi"
        path.write_text(MIXED_POLARITY_XMI.replace('polarity="0"', 'assertion="maybe"'), encoding="utf-8")
        with pytest.raises(SerializationError):
            read_xmi(path)
