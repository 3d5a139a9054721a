"""Annotation stages, their collaborators and the stage chain."""

from clinspan.pipeline.chain import StageChain, build_chain, default_stages
from clinspan.pipeline.dictionary import (
    ContextAssertion,
    DictionaryLookupResolver,
    TermDictionary,
    TermEntry,
)
from clinspan.pipeline.interfaces import (
    ChunkerInterface,
    DictionaryResolverInterface,
    LexicalNormalizerInterface,
    LookupHit,
    PosTaggerInterface,
    SentenceModelInterface,
    TokenizerInterface,
)
from clinspan.pipeline.models import (
    LexiconPosTagger,
    PTBTokenizer,
    RegexSentenceModel,
    RuleChunker,
    SuffixNormalizer,
)
from clinspan.pipeline.stages import (
    AnnotationStage,
    ChunkAdjustStage,
    ChunkStage,
    ConceptLookupStage,
    LexicalNormalizeStage,
    LookupWindowStage,
    OverlapResolveStage,
    PosTagStage,
    SegmentStage,
    SentenceStage,
    TokenizeStage,
    TokenMergeStage,
)

__all__ = [
    # Chain
    "StageChain",
    "build_chain",
    "default_stages",
    # Collaborator interfaces
    "SentenceModelInterface",
    "TokenizerInterface",
    "PosTaggerInterface",
    "ChunkerInterface",
    "DictionaryResolverInterface",
    "LexicalNormalizerInterface",
    "LookupHit",
    # Default collaborators
    "RegexSentenceModel",
    "PTBTokenizer",
    "LexiconPosTagger",
    "RuleChunker",
    "SuffixNormalizer",
    "TermDictionary",
    "TermEntry",
    "ContextAssertion",
    "DictionaryLookupResolver",
    # Stages
    "AnnotationStage",
    "SegmentStage",
    "SentenceStage",
    "TokenizeStage",
    "TokenMergeStage",
    "PosTagStage",
    "ChunkStage",
    "ChunkAdjustStage",
    "LookupWindowStage",
    "OverlapResolveStage",
    "ConceptLookupStage",
    "LexicalNormalizeStage",
]
