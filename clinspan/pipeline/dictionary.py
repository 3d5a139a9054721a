"""Dictionary lookup and assertion for lookup windows.

:class:`TermDictionary` loads a bar-separated ("BSV") term list::

    # CUI|TUI|term[|codes]
    C0008031|T184|chest pain|SNOMEDCT_US=29857009
    C0008031|T184|chest pains
    C0004057|T121|aspirin|RXNORM=1191;SNOMEDCT_US=387458008

The optional fourth column lists extra coded concepts as ``SCHEME=code`` pairs
separated by ``;``. The TUI decides the mention variant (disorders become
``DiseaseDisorderMention``, drugs ``MedicationMention`` and so on); a blank or
unknown TUI yields a plain ``EntityMention``.

:class:`DictionaryLookupResolver` does longest-match lookup over the words of a
window and asks :class:`ContextAssertion` for each hit's polarity, NegEx style:
triggers in the sentence text before the hit, after the last scope terminator.
"""

import re
from collections import defaultdict
from pathlib import Path
from typing import Iterable

from pydantic import BaseModel

from clinspan.errors import ResourceError
from clinspan.pipeline.interfaces import DictionaryResolverInterface, LookupHit
from clinspan.span import CodedConcept, LookupWindow, OntologyConcept, Polarity, Sentence, UmlsConcept

_WORD = re.compile(r"[^\W_]+")
_CUI = re.compile(r"^C\d{7}$")

_TUI_GROUPS: dict[str, tuple[str, ...]] = {
    "DiseaseDisorderMention": ("T019", "T020", "T037", "T046", "T047", "T048", "T049", "T050", "T190", "T191"),
    "SignSymptomMention": ("T033", "T184"),
    "ProcedureMention": ("T060", "T061"),
    "LabMention": ("T059",),
    "MedicationMention": (
        "T109", "T110", "T114", "T115", "T116", "T118", "T119", "T121", "T122", "T123",
        "T124", "T125", "T126", "T127", "T129", "T130", "T131", "T195", "T196", "T197", "T200", "T203",
    ),
    "AnatomicalSiteMention": ("T017", "T021", "T022", "T023", "T024", "T025", "T026", "T029", "T030"),
}
TUI_MENTION_TYPES: dict[str, str] = {tui: name for name, tuis in _TUI_GROUPS.items() for tui in tuis}


def mention_type_for_tui(tui: str | None) -> str:
    return TUI_MENTION_TYPES.get(tui or "", "EntityMention")


def normalize_term(text: str) -> str:
    """Lower-case and collapse a term to space-separated alphanumeric words."""
    return " ".join(_WORD.findall(text.lower()))


class TermEntry(BaseModel):
    """One dictionary row."""

    model_config = {"frozen": True}

    cui: str
    tui: str | None = None
    text: str
    codes: tuple[CodedConcept, ...] = ()

    @property
    def mention_type(self) -> str:
        return mention_type_for_tui(self.tui)

    def concepts(self) -> list[OntologyConcept]:
        return [UmlsConcept(cui=self.cui, tui=self.tui, preferred_text=self.text), *self.codes]


class TermDictionary:
    """In-memory term index keyed by normalized term text."""

    def __init__(self, entries: Iterable[TermEntry] = ()):
        self._terms: dict[str, list[TermEntry]] = defaultdict(list)
        self.max_words = 1
        for entry in entries:
            self.add(entry)

    def add(self, entry: TermEntry) -> None:
        key = normalize_term(entry.text)
        if not key:
            raise ValueError(f"term {entry.text!r} has no words")
        self._terms[key].append(entry)
        self.max_words = max(self.max_words, key.count(" ") + 1)

    def get(self, key: str) -> list[TermEntry]:
        return self._terms.get(key, [])

    def __len__(self) -> int:
        return sum(len(v) for v in self._terms.values())

    @classmethod
    def from_bsv(cls, path: Path | str) -> "TermDictionary":
        """Load a BSV dictionary file.

        Raises:
            ResourceError: If the file is unreadable or a row is malformed.
        """
        path = Path(path)
        try:
            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ResourceError(path, f"cannot read dictionary: {e}") from e

        dictionary = cls()
        for number, line in enumerate(lines, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            fields = [f.strip() for f in line.split("|")]
            if len(fields) < 3 or len(fields) > 4:
                raise ResourceError(path, f"line {number}: expected CUI|TUI|term[|codes]")
            cui, tui, text = fields[:3]
            if not _CUI.match(cui):
                raise ResourceError(path, f"line {number}: {cui!r} is not a CUI")
            codes = _parse_codes(fields[3]) if len(fields) == 4 else ()
            if codes is None:
                raise ResourceError(path, f"line {number}: codes must be SCHEME=code pairs")
            try:
                dictionary.add(TermEntry(cui=cui, tui=tui or None, text=text, codes=codes))
            except ValueError as e:
                raise ResourceError(path, f"line {number}: {e}") from e
        if not len(dictionary):
            raise ResourceError(path, "dictionary is empty")
        return dictionary


def _parse_codes(column: str) -> tuple[CodedConcept, ...] | None:
    codes = []
    for pair in filter(None, (p.strip() for p in column.split(";"))):
        scheme, sep, code = pair.partition("=")
        if not sep or not scheme.strip() or not code.strip():
            return None
        codes.append(CodedConcept(coding_scheme=scheme.strip(), code=code.strip()))
    return tuple(codes)


NEGATION_TRIGGERS = (
    r"\bno\b",
    r"\bnot\b",
    r"\bdenies\b",
    r"\bdenied\b",
    r"\bdeny\b",
    r"\bwithout\b",
    r"\babsence\s+of\b",
    r"\bnegative\s+for\b",
    r"\bfree\s+of\b",
    r"\bruled\s+out\b",
    r"\bno\s+evidence\s+of\b",
)

UNCERTAINTY_TRIGGERS = (
    r"\bcannot\s+rule\s+out\b",
    r"\bcan'?t\s+rule\s+out\b",
    r"\bpossible\b",
    r"\bprobable\b",
    r"\bsuspected?\b",
    r"\bquestionable\b",
    r"\bmay\s+have\b",
    r"\bconcern\s+for\b",
    r"\brule\s+out\b",
    r"\br/o\b",
)

SCOPE_TERMINATORS = r"\bbut\b|\bhowever\b|\balthough\b|\bexcept\b|[;:]"


class ContextAssertion:
    """Decide polarity from the sentence text preceding a mention.

    Uncertainty triggers are checked first, so "cannot rule out pneumonia" is
    uncertain rather than negated.
    """

    def __init__(
        self,
        negation_triggers: Iterable[str] = NEGATION_TRIGGERS,
        uncertainty_triggers: Iterable[str] = UNCERTAINTY_TRIGGERS,
        max_context: int = 60,
    ):
        self._negation = [re.compile(p, re.IGNORECASE) for p in negation_triggers]
        self._uncertainty = [re.compile(p, re.IGNORECASE) for p in uncertainty_triggers]
        self._terminator = re.compile(SCOPE_TERMINATORS, re.IGNORECASE)
        self.max_context = max_context

    @classmethod
    def from_file(cls, path: Path | str) -> "ContextAssertion":
        """Load triggers from a ``negated<TAB>phrase`` / ``uncertain<TAB>phrase`` file.

        Phrases are literal text and match on word boundaries.
        """
        path = Path(path)
        triggers: dict[str, list[str]] = {"negated": [], "uncertain": []}
        try:
            with open(path, encoding="utf-8") as f:
                lines = f.read().splitlines()
        except (OSError, UnicodeDecodeError) as e:
            raise ResourceError(path, f"cannot read triggers: {e}") from e
        for number, line in enumerate(lines, start=1):
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            kind, _, phrase = line.partition("\t")
            if kind.strip() not in triggers or not phrase.strip():
                raise ResourceError(path, f"line {number}: expected 'negated|uncertain<TAB>phrase'")
            words = r"\s+".join(re.escape(w) for w in phrase.split())
            triggers[kind.strip()].append(rf"(?<!\w){words}(?!\w)")
        return cls(negation_triggers=triggers["negated"], uncertainty_triggers=triggers["uncertain"])

    def polarity(self, preceding: str) -> Polarity:
        context = preceding[-self.max_context :]
        cut = None
        for cut in self._terminator.finditer(context):
            pass
        if cut is not None:
            context = context[cut.end() :]
        if any(p.search(context) for p in self._uncertainty):
            return Polarity.UNCERTAIN
        if any(p.search(context) for p in self._negation):
            return Polarity.NEGATED
        return Polarity.POSITIVE


class DictionaryLookupResolver(DictionaryResolverInterface):
    """Longest-match dictionary lookup with context assertion.

    Each matched term yields one hit per mention variant among its dictionary
    entries, carrying every concept of that variant.
    """

    def __init__(self, dictionary: TermDictionary, assertion: ContextAssertion | None = None):
        self.dictionary = dictionary
        self.assertion = assertion or ContextAssertion()

    async def lookup(
        self,
        window: LookupWindow,
        window_text: str,
        sentence: Sentence | None,
        sentence_text: str,
    ) -> list[LookupHit]:
        words = list(_WORD.finditer(window_text.lower()))
        hits: list[LookupHit] = []
        i = 0
        while i < len(words):
            for j in range(min(len(words), i + self.dictionary.max_words), i, -1):
                entries = self.dictionary.get(" ".join(w.group() for w in words[i:j]))
                if entries:
                    begin = window.begin + words[i].start()
                    end = window.begin + words[j - 1].end()
                    hits.extend(self._hits(entries, begin, end, sentence, sentence_text, window, window_text))
                    i = j
                    break
            else:
                i += 1
        return hits

    def _hits(
        self,
        entries: list[TermEntry],
        begin: int,
        end: int,
        sentence: Sentence | None,
        sentence_text: str,
        window: LookupWindow,
        window_text: str,
    ) -> list[LookupHit]:
        if sentence is not None:
            preceding = sentence_text[: max(0, begin - sentence.begin)]
        else:
            preceding = window_text[: begin - window.begin]
        polarity = self.assertion.polarity(preceding)
        by_type: dict[str, list[OntologyConcept]] = defaultdict(list)
        for entry in entries:
            by_type[entry.mention_type].extend(entry.concepts())
        return [
            LookupHit(begin=begin, end=end, mention_type=mention_type, polarity=polarity, concepts=tuple(concepts))
            for mention_type, concepts in by_type.items()
        ]
