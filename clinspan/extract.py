"""Reduce a finished annotation graph to signed ontology codes."""

from clinspan.graph import AnnotationGraph
from clinspan.span import Mention, MentionKind, UmlsConcept


def get_ontology_concept_codes(mention: Mention) -> set[str]:
    """Return the distinct codes of a mention's concepts.

    A UMLS concept contributes its CUI; any other concept contributes its
    coding scheme name followed directly by its code (``SNOMEDCT_US22298006``).
    """
    codes: set[str] = set()
    for concept in mention.concepts:
        if isinstance(concept, UmlsConcept):
            codes.add(concept.cui)
        else:
            codes.add(concept.coding_scheme + concept.code)
    return codes


def mention_text(graph: AnnotationGraph, mention: Mention) -> str:
    return graph.covered_text(mention).lower().replace(" ", "_")


def format_codes(graph: AnnotationGraph, mention: Mention) -> list[str]:
    """Format one mention as ``[-]code|text|semanticType`` strings, one per code.

    Codes within a mention come out sorted; a non-positive polarity prefixes
    every string with a single ``-``.
    """
    text = mention_text(graph, mention)
    sign = "" if mention.polarity.is_positive else "-"
    return [f"{sign}{code}|{text}|{mention.mention_type}" for code in sorted(get_ontology_concept_codes(mention))]


def extract_codes(graph: AnnotationGraph) -> list[str]:
    """Return the code stream for a document.

    Event mentions come first, then entity mentions, each block in document
    order. Codes are deduplicated within a mention but not across mentions.
    Mentions without concepts contribute nothing. The graph is not modified.
    """
    mentions = graph.select(Mention)
    codes: list[str] = []
    for kind in (MentionKind.EVENT, MentionKind.ENTITY):
        for mention in mentions:
            if mention.kind is kind:
                codes.extend(format_codes(graph, mention))
    return codes
