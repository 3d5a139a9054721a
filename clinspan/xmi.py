"""XMI serialization of annotation graphs.

Graphs are written as UIMA-style XMI 2.0 documents using the cTAKES type
system names, so the files open in the usual CAS tooling:

- ``cas:Sofa`` ``_InitialView`` carries the document text;
- ``cas:Sofa`` ``UriView`` carries the source URI;
- ``textspan:Segment``, ``textspan:Sentence``, ``textspan:LookupWindowAnnotation``;
- ``syntax:WordToken`` / ``NumToken`` / ``PunctuationToken`` / ``SymbolToken``
  and ``syntax:Chunk``;
- one ``textsem:<MentionType>`` element per mention, pointing at its concepts
  through ``ontologyConceptArr``;
- ``refsem:UmlsConcept`` and ``refsem:OntologyConcept``;
- ``cas:View`` listing the members of each view.

Polarity is encoded the cTAKES way: ``polarity="1"`` or ``"-1"`` plus an
``uncertainty`` flag, so uncertain mentions are written as ``polarity="-1"
uncertainty="1"``. Mentions also carry an ``assertion`` attribute with the
exact :class:`~clinspan.span.Polarity` value. XMI from other writers has no
``assertion``; there a mention is positive only when ``polarity > 0``.

:func:`read_xmi` accepts the files written here and also reads the span kinds
it knows from cTAKES-produced XMI (concept arrays behind ``cas:FSArray``,
unknown types skipped).
"""

import re
import xml.etree.ElementTree as ET
from pathlib import Path
from urllib.parse import unquote, urlparse

from clinspan.document import ClinicalDocument
from clinspan.errors import SerializationError
from clinspan.graph import AnnotationGraph
from clinspan.span import (
    Chunk,
    CodedConcept,
    LookupWindow,
    Mention,
    MentionKind,
    OntologyConcept,
    Polarity,
    Segment,
    Sentence,
    Span,
    Token,
    TokenKind,
    UmlsConcept,
    mention_kind,
)

XMI_SUFFIX = ".xmi"
INITIAL_VIEW = "_InitialView"
URI_VIEW = "UriView"
XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

NAMESPACES = {
    "xmi": "http://www.omg.org/XMI",
    "cas": "http:///uima/cas.ecore",
    "textspan": "http:///org/apache/ctakes/typesystem/type/textspan.ecore",
    "syntax": "http:///org/apache/ctakes/typesystem/type/syntax.ecore",
    "textsem": "http:///org/apache/ctakes/typesystem/type/textsem.ecore",
    "refsem": "http:///org/apache/ctakes/typesystem/type/refsem.ecore",
}
for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)

XMI_ID = f"{{{NAMESPACES['xmi']}}}id"

TOKEN_ELEMENTS = {
    TokenKind.WORD: "WordToken",
    TokenKind.NUMBER: "NumToken",
    TokenKind.PUNCTUATION: "PunctuationToken",
    TokenKind.SYMBOL: "SymbolToken",
}
TOKEN_KINDS = {name: kind for kind, name in TOKEN_ELEMENTS.items()}

# XML 1.0 forbids most C0 control characters, even escaped.
_INVALID_XML = re.compile("[\x00-\x08\x0b\x0c\x0e-\x1f\ufffe\uffff]")


def _q(prefix: str, name: str) -> str:
    return f"{{{NAMESPACES[prefix]}}}{name}"


def _split_tag(tag: str) -> tuple[str, str]:
    if tag.startswith("{"):
        uri, _, local = tag[1:].partition("}")
        return uri, local
    return "", tag


def xmi_path(output_dir: Path | str, document_id: str) -> Path:
    return Path(output_dir) / f"{document_id}{XMI_SUFFIX}"


# --- Writing ---


def _span_element(span: Span) -> tuple[str, dict[str, str]]:
    attrs = {"begin": str(span.begin), "end": str(span.end)}
    if isinstance(span, Segment):
        return _q("textspan", "Segment"), {**attrs, "id": span.segment_id}
    if isinstance(span, Sentence):
        return _q("textspan", "Sentence"), {**attrs, "sentenceNumber": str(span.sentence_number)}
    if isinstance(span, Token):
        attrs["tokenNumber"] = str(span.token_number)
        if span.part_of_speech is not None:
            attrs["partOfSpeech"] = span.part_of_speech
        if span.normalized_form is not None:
            attrs["normalizedForm"] = span.normalized_form
        return _q("syntax", TOKEN_ELEMENTS[span.kind]), attrs
    if isinstance(span, Chunk):
        attrs["chunkType"] = span.chunk_type
        if span.superseded:
            attrs["superseded"] = "true"
        return _q("syntax", "Chunk"), attrs
    if isinstance(span, LookupWindow):
        return _q("textspan", "LookupWindowAnnotation"), attrs
    if isinstance(span, Mention):
        attrs["polarity"] = "1" if span.polarity.is_positive else "-1"
        attrs["uncertainty"] = "1" if span.polarity is Polarity.UNCERTAIN else "0"
        attrs["assertion"] = span.polarity.value
        if mention_kind(span.mention_type) is not span.kind:
            attrs["kind"] = span.kind.value
        return _q("textsem", span.mention_type), attrs
    raise TypeError(f"no XMI mapping for span type {span.type_name}")


def _concept_element(concept: OntologyConcept) -> tuple[str, dict[str, str]]:
    if isinstance(concept, UmlsConcept):
        attrs = {"codingScheme": "UMLS", "cui": concept.cui}
        if concept.tui:
            attrs["tui"] = concept.tui
        if concept.preferred_text:
            attrs["preferredText"] = concept.preferred_text
        return _q("refsem", "UmlsConcept"), attrs
    return _q("refsem", "OntologyConcept"), {"codingScheme": concept.coding_scheme, "code": concept.code}


def serialize_xmi(document: ClinicalDocument, graph: AnnotationGraph) -> str:
    """Render a document and its graph as an XMI string.

    Raises:
        SerializationError: If the text holds characters XML cannot carry.
    """
    bad = _INVALID_XML.search(graph.text)
    if bad is not None:
        raise SerializationError(
            document.document_id, f"text contains control character {bad.group()!r} at offset {bad.start()}"
        )

    root = ET.Element(_q("xmi", "XMI"), {f"{{{NAMESPACES['xmi']}}}version": "2.0"})
    ids = iter(range(1, 1 << 62))
    ET.SubElement(root, _q("cas", "NULL"), {XMI_ID: "0"})

    text_sofa = str(next(ids))
    ET.SubElement(
        root,
        _q("cas", "Sofa"),
        {XMI_ID: text_sofa, "sofaNum": "1", "sofaID": INITIAL_VIEW, "mimeType": "text/plain", "sofaString": graph.text},
    )
    uri_sofa = None
    if document.source_uri:
        uri_sofa = str(next(ids))
        ET.SubElement(
            root,
            _q("cas", "Sofa"),
            {XMI_ID: uri_sofa, "sofaNum": "2", "sofaID": URI_VIEW, "mimeType": "text/uri-list", "sofaString": document.source_uri},
        )

    members: list[str] = []
    for span in graph.spans():
        tag, attrs = _span_element(span)
        element_id = str(next(ids))
        members.append(element_id)
        element = ET.SubElement(root, tag, {XMI_ID: element_id, "sofa": text_sofa, **attrs})
        if isinstance(span, Mention) and span.concepts:
            concept_ids = []
            for concept in span.concepts:
                concept_tag, concept_attrs = _concept_element(concept)
                concept_id = str(next(ids))
                concept_ids.append(concept_id)
                ET.SubElement(root, concept_tag, {XMI_ID: concept_id, **concept_attrs})
            element.set("ontologyConceptArr", " ".join(concept_ids))

    ET.SubElement(root, _q("cas", "View"), {"sofa": text_sofa, "members": " ".join(members)})
    if uri_sofa is not None:
        ET.SubElement(root, _q("cas", "View"), {"sofa": uri_sofa, "members": ""})
    return XML_DECLARATION + ET.tostring(root, encoding="unicode")


def write_xmi(document: ClinicalDocument, graph: AnnotationGraph, output_dir: Path | str) -> Path:
    """Write ``<document_id>.xmi`` under ``output_dir``, creating the directory.

    Raises:
        SerializationError: If the XMI cannot be rendered or written.
    """
    payload = serialize_xmi(document, graph)
    path = xmi_path(output_dir, document.document_id)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")
    except OSError as e:
        raise SerializationError(document.document_id, f"cannot write {path}: {e}") from e
    return path


# --- Reading ---


def _int(element: ET.Element, name: str, default: int = 0) -> int:
    value = element.get(name)
    return int(value) if value not in (None, "") else default


def _concepts(element: ET.Element, by_id: dict[str, ET.Element]) -> tuple[OntologyConcept, ...]:
    refs = (element.get("ontologyConceptArr") or "").split()
    concepts: list[OntologyConcept] = []
    for ref in refs:
        target = by_id.get(ref)
        if target is None:
            continue
        if _split_tag(target.tag)[1] == "FSArray":
            refs.extend(r for r in (target.get("elements") or "").split() if r not in refs)
            continue
        local = _split_tag(target.tag)[1]
        if local == "UmlsConcept" and target.get("cui"):
            concepts.append(UmlsConcept(cui=target.get("cui"), tui=target.get("tui"), preferred_text=target.get("preferredText")))
        elif target.get("codingScheme") and target.get("code"):
            concepts.append(CodedConcept(coding_scheme=target.get("codingScheme"), code=target.get("code")))
    return tuple(concepts)


def _polarity(element: ET.Element) -> Polarity:
    assertion = element.get("assertion")
    if assertion:
        return Polarity(assertion)
    # Foreign XMI: only a positive polarity is asserted, uncertainty is not read.
    return Polarity.POSITIVE if _int(element, "polarity") > 0 else Polarity.NEGATED


def _read_span(element: ET.Element, by_id: dict[str, ET.Element]) -> Span | None:
    uri, local = _split_tag(element.tag)
    bounds = {"begin": _int(element, "begin"), "end": _int(element, "end")}
    if uri == NAMESPACES["textspan"]:
        if local == "Segment":
            return Segment(**bounds, segment_id=element.get("id") or "SIMPLE_SEGMENT")
        if local == "Sentence":
            return Sentence(**bounds, sentence_number=_int(element, "sentenceNumber"))
        if local == "LookupWindowAnnotation":
            return LookupWindow(**bounds)
    elif uri == NAMESPACES["syntax"]:
        if local in TOKEN_KINDS:
            return Token(
                **bounds,
                kind=TOKEN_KINDS[local],
                token_number=_int(element, "tokenNumber"),
                part_of_speech=element.get("partOfSpeech"),
                normalized_form=element.get("normalizedForm"),
            )
        if local == "Chunk":
            return Chunk(
                **bounds,
                chunk_type=element.get("chunkType") or "O",
                superseded=element.get("superseded") == "true",
            )
    elif uri == NAMESPACES["textsem"] and local.endswith("Mention"):
        kind = element.get("kind")
        return Mention(
            **bounds,
            mention_type=local,
            kind=MentionKind(kind) if kind else mention_kind(local),
            polarity=_polarity(element),
            concepts=_concepts(element, by_id),
        )
    return None


def _document_id_from_uri(uri: str) -> str:
    parsed = urlparse(uri)
    path = unquote(parsed.path) if parsed.scheme else uri
    return Path(path).name


def read_xmi(path: Path | str) -> tuple[ClinicalDocument, AnnotationGraph]:
    """Load a document and its annotation graph from an XMI file.

    The document id is the base name of the source URI recorded in the
    ``UriView`` sofa, or the XMI file name without ``.xmi`` when there is none.

    Raises:
        SerializationError: If the file is unreadable, not XML, or has no text sofa.
    """
    path = Path(path)
    fallback_id = path.name[: -len(XMI_SUFFIX)] if path.name.endswith(XMI_SUFFIX) else path.name
    try:
        root = ET.parse(path).getroot()
    except (OSError, ET.ParseError) as e:
        raise SerializationError(fallback_id, f"cannot read {path}: {e}") from e

    by_id = {element.get(XMI_ID): element for element in root if element.get(XMI_ID) is not None}
    sofas = {e.get("sofaID"): e for e in root if _split_tag(e.tag) == (NAMESPACES["cas"], "Sofa")}
    if INITIAL_VIEW not in sofas:
        raise SerializationError(fallback_id, f"{path} has no {INITIAL_VIEW} sofa")
    text_sofa = sofas[INITIAL_VIEW]
    text = text_sofa.get("sofaString") or ""
    source_uri = sofas[URI_VIEW].get("sofaString") if URI_VIEW in sofas else None

    document = ClinicalDocument(
        document_id=_document_id_from_uri(source_uri) if source_uri else fallback_id,
        text=text,
        source_uri=source_uri,
    )
    graph = AnnotationGraph(text)
    sofa_id = text_sofa.get(XMI_ID)
    try:
        for element in root:
            if element.get("sofa") != sofa_id:
                continue
            span = _read_span(element, by_id)
            if span is not None:
                graph.add(span)
    except ValueError as e:
        raise SerializationError(document.document_id, f"invalid annotation in {path}: {e}") from e
    return document, graph
