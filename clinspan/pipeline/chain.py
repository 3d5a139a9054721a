"""The ordered stage chain and its default assembly."""

from typing import Sequence

from clinspan.config import PipelineConfig
from clinspan.document import ClinicalDocument
from clinspan.errors import ClinspanError, StageError
from clinspan.graph import AnnotationGraph
from clinspan.logging import setup_logging
from clinspan.pipeline.dictionary import ContextAssertion, DictionaryLookupResolver, TermDictionary
from clinspan.pipeline.interfaces import (
    ChunkerInterface,
    DictionaryResolverInterface,
    LexicalNormalizerInterface,
    PosTaggerInterface,
    SentenceModelInterface,
    TokenizerInterface,
)
from clinspan.pipeline.models import (
    DEFAULT_ABBREVIATIONS,
    LexiconPosTagger,
    PTBTokenizer,
    RegexSentenceModel,
    RuleChunker,
    SuffixNormalizer,
    load_lexicon,
    load_word_list,
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

logger = setup_logging()


class StageChain:
    """Run stages in order over a fresh graph per document.

    Stage k never starts before stage k-1 has finished; a failing stage aborts
    the document with a :class:`StageError` and later stages do not run.
    """

    def __init__(self, stages: Sequence[AnnotationStage]):
        if not stages:
            raise ValueError("a stage chain needs at least one stage")
        self.stages = tuple(stages)

    @property
    def stage_names(self) -> list[str]:
        return [stage.name for stage in self.stages]

    async def run(self, document: ClinicalDocument) -> AnnotationGraph:
        graph = AnnotationGraph(document.text)
        for stage in self.stages:
            try:
                graph = await stage.process(document, graph)
            except ClinspanError:
                raise
            except Exception as e:
                raise StageError(stage.name, document.document_id, f"{type(e).__name__}: {e}") from e
            logger.debug(f"{document.document_id}: {stage.name} -> {graph.type_counts()}")
        return graph


def default_stages(
    sentence_model: SentenceModelInterface,
    tokenizer: TokenizerInterface,
    pos_tagger: PosTaggerInterface,
    chunker: ChunkerInterface,
    resolver: DictionaryResolverInterface,
    normalizer: LexicalNormalizerInterface,
    abbreviations: frozenset[str] = DEFAULT_ABBREVIATIONS,
    section_patterns: Sequence[str] = (),
) -> list[AnnotationStage]:
    """Assemble the standard stage order around the given collaborators."""
    return [
        SegmentStage(section_patterns),
        SentenceStage(sentence_model),
        TokenizeStage(tokenizer),
        TokenMergeStage(abbreviations),
        PosTagStage(pos_tagger),
        ChunkStage(chunker),
        # NP NP: extend the first NP over the second
        ChunkAdjustStage(("NP", "NP"), extend_to_include=1),
        # NP PP NP: extend the first NP over all three
        ChunkAdjustStage(("NP", "PP", "NP"), extend_to_include=2),
        LookupWindowStage("NP"),
        OverlapResolveStage(),
        ConceptLookupStage(resolver),
        LexicalNormalizeStage(normalizer),
    ]


def build_chain(config: PipelineConfig) -> StageChain:
    """Load every configured resource and assemble the default chain.

    Resources are loaded once here and shared read-only by all documents.

    Raises:
        ResourceError: If a resource file is unreadable or malformed.
    """
    abbreviations = DEFAULT_ABBREVIATIONS
    if config.abbreviations_path is not None:
        abbreviations = DEFAULT_ABBREVIATIONS | load_word_list(config.abbreviations_path)
    lexicon = load_lexicon(config.pos_lexicon_path) if config.pos_lexicon_path is not None else None
    if config.negation_triggers_path is not None:
        assertion = ContextAssertion.from_file(config.negation_triggers_path)
    else:
        assertion = ContextAssertion()
    dictionary = TermDictionary.from_bsv(config.dictionary_path)
    logger.info(f"Loaded {len(dictionary)} dictionary terms from {config.dictionary_path}")

    return StageChain(
        default_stages(
            sentence_model=RegexSentenceModel(abbreviations, split_on_newlines=config.split_on_newlines),
            tokenizer=PTBTokenizer(),
            pos_tagger=LexiconPosTagger(lexicon),
            chunker=RuleChunker(),
            resolver=DictionaryLookupResolver(dictionary, assertion),
            normalizer=SuffixNormalizer(),
            abbreviations=abbreviations,
            section_patterns=config.section_patterns,
        )
    )
