"""Rule-based default collaborators.

These implementations satisfy the collaborator contracts well enough to run
the pipeline end to end on plain clinical notes without trained models. Each
one can be swapped for a statistical implementation of the same interface.

Resource files are plain text:

- abbreviation lists: one abbreviation per line, without the trailing period;
- POS lexicons: ``word<TAB>TAG`` per line.

Blank lines and lines starting with ``#`` are ignored.
"""

import re
from pathlib import Path
from typing import Iterable, Sequence

from clinspan.errors import ResourceError
from clinspan.pipeline.interfaces import (
    ChunkerInterface,
    LexicalNormalizerInterface,
    PosTaggerInterface,
    SentenceModelInterface,
    TokenizerInterface,
)
from clinspan.span import TokenKind

DEFAULT_ABBREVIATIONS = frozenset(
    {
        "dr", "mr", "mrs", "ms", "pt", "pts", "hx", "dx", "tx", "rx", "sx", "fx",
        "mg", "mcg", "ml", "kg", "cm", "mm", "approx", "vs", "etc", "no", "st",
        "jan", "feb", "mar", "apr", "jun", "jul", "aug", "sep", "sept", "oct", "nov", "dec",
    }
)

PUNCTUATION = frozenset(".,;:!?'\"()[]{}-")


def _resource_lines(path: Path | str) -> Iterable[tuple[int, str]]:
    path = Path(path)
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise ResourceError(path, f"cannot read resource: {e}") from e
    for number, line in enumerate(lines, start=1):
        line = line.strip()
        if line and not line.startswith("#"):
            yield number, line


def load_word_list(path: Path | str) -> frozenset[str]:
    """Load a one-entry-per-line word list, lower-cased."""
    return frozenset(line.lower().rstrip(".") for _, line in _resource_lines(path))


def load_lexicon(path: Path | str) -> dict[str, str]:
    """Load a ``word<TAB>TAG`` lexicon.

    Raises:
        ResourceError: If the file is missing or a line has no tag.
    """
    lexicon: dict[str, str] = {}
    for number, line in _resource_lines(path):
        parts = line.split("\t")
        if len(parts) != 2 or not parts[1].strip():
            raise ResourceError(path, f"line {number}: expected 'word<TAB>TAG'")
        lexicon[parts[0].strip().lower()] = parts[1].strip()
    return lexicon


# --- Sentences ---


_BOUNDARY = re.compile(r"[.!?]+(?=[\s\"')\]]|$)|\n[ \t]*\n")
_LAST_WORD = re.compile(r"([^\W\d_]+)$")
_NEWLINE = re.compile(r"\n")


class RegexSentenceModel(SentenceModelInterface):
    """Split on terminal punctuation and blank lines.

    A period does not end a sentence when it follows a known abbreviation or a
    single letter, or when the next word starts in lower case.
    """

    def __init__(self, abbreviations: Iterable[str] = DEFAULT_ABBREVIATIONS, split_on_newlines: bool = False):
        self.abbreviations = frozenset(a.lower() for a in abbreviations)
        self.split_on_newlines = split_on_newlines

    def _is_boundary(self, text: str, start: int, match: re.Match, end: int) -> bool:
        if match.group().startswith("\n"):
            return True
        if match.group() != ".":
            return True
        word = _LAST_WORD.search(text, start, match.start())
        if word and (len(word.group(1)) == 1 or word.group(1).lower() in self.abbreviations):
            return False
        following = text[match.end() : end].lstrip()
        return not (following and following[0].islower())

    def _trim(self, text: str, begin: int, end: int) -> tuple[int, int] | None:
        while begin < end and text[begin].isspace():
            begin += 1
        while end > begin and text[end - 1].isspace():
            end -= 1
        return (begin, end) if begin < end else None

    async def detect(self, text: str, begin: int, end: int) -> list[tuple[int, int]]:
        cuts: list[int] = []
        start = begin
        for match in _BOUNDARY.finditer(text, begin, end):
            if self._is_boundary(text, start, match, end):
                cut = match.start() if match.group().startswith("\n") else match.end()
                cuts.append(cut)
                start = match.end()
        if self.split_on_newlines:
            cuts.extend(m.start() for m in _NEWLINE.finditer(text, begin, end))
        sentences: list[tuple[int, int]] = []
        start = begin
        for cut in sorted(set(cuts)) + [end]:
            if cut <= start:
                continue
            trimmed = self._trim(text, start, cut)
            if trimmed:
                sentences.append(trimmed)
            start = cut
        return sentences


# --- Tokens ---


_TOKEN = re.compile(
    r"(?P<word>[^\W\d_][^\W_]*(?:['-][^\W_]+)*|\d+[^\W\d_][^\W_]*)"
    r"|(?P<number>\d+)"
    r"|(?P<other>[^\w\s]|_+)"
)


class PTBTokenizer(TokenizerInterface):
    """Penn-Treebank-flavoured regex tokenizer.

    Words keep internal hyphens and apostrophes, digit runs are numbers and
    every other non-space character is its own token. Decimals, fractions and
    abbreviation periods come out split; the token merge stage rejoins them.
    """

    async def tokenize(self, text: str, begin: int, end: int) -> list[tuple[int, int, TokenKind]]:
        tokens = []
        for match in _TOKEN.finditer(text, begin, end):
            if match.group("word"):
                kind = TokenKind.WORD
            elif match.group("number"):
                kind = TokenKind.NUMBER
            elif match.group() in PUNCTUATION:
                kind = TokenKind.PUNCTUATION
            else:
                kind = TokenKind.SYMBOL
            tokens.append((match.start(), match.end(), kind))
        return tokens


# --- Part of speech ---


CLOSED_CLASS: dict[str, str] = {
    **dict.fromkeys(("a", "an", "the", "this", "that", "these", "those", "any", "some", "each", "every"), "DT"),
    "no": "DT",
    **dict.fromkeys(("of", "in", "on", "at", "for", "with", "without", "from", "by", "after", "before",
                     "during", "since", "about", "into", "over", "under", "per", "than", "due"), "IN"),
    "to": "TO",
    **dict.fromkeys(("and", "or", "but", "nor"), "CC"),
    **dict.fromkeys(("he", "she", "it", "they", "we", "i", "you", "him", "them", "us", "me"), "PRP"),
    **dict.fromkeys(("his", "her", "its", "their", "our", "my", "your"), "PRP$"),
    **dict.fromkeys(("will", "would", "can", "could", "may", "might", "should", "must", "shall"), "MD"),
    **dict.fromkeys(("is", "has", "denies", "reports", "complains", "presents", "remains", "appears",
                     "notes", "states", "takes", "continues"), "VBZ"),
    **dict.fromkeys(("was", "had", "denied", "reported", "noted", "presented", "started", "stopped"), "VBD"),
    **dict.fromkeys(("are", "have", "deny", "report", "take"), "VBP"),
    **dict.fromkeys(("be", "do"), "VB"),
    **dict.fromkeys(("been",), "VBN"),
    **dict.fromkeys(("not", "also", "very", "now", "currently", "previously", "again"), "RB"),
    **dict.fromkeys(("who", "which", "what"), "WP"),
    "patient": "NN",
}

_PUNCT_TAGS = {".": ".", "!": ".", "?": ".", ",": ",", ":": ":", ";": ":", "-": ":", "(": "-LRB-", ")": "-RRB-"}

_SUFFIX_TAGS: tuple[tuple[str, str], ...] = (
    ("ly", "RB"),
    ("ing", "VBG"),
    ("ed", "VBN"),
    ("ous", "JJ"),
    ("ive", "JJ"),
    ("ic", "JJ"),
    ("al", "JJ"),
    ("ful", "JJ"),
    ("less", "JJ"),
    ("able", "JJ"),
)


class LexiconPosTagger(PosTaggerInterface):
    """Lexicon lookup with suffix heuristics; unknown words default to NN."""

    def __init__(self, lexicon: dict[str, str] | None = None):
        self.lexicon = {**CLOSED_CLASS, **(lexicon or {})}

    def _tag_word(self, word: str) -> str:
        lowered = word.lower()
        if lowered in self.lexicon:
            return self.lexicon[lowered]
        if word in _PUNCT_TAGS:
            return _PUNCT_TAGS[word]
        if word.isdigit():
            return "CD"
        if not any(c.isalnum() for c in word):
            return "SYM"
        if any(c.isdigit() for c in word):
            return "CD" if word.replace(".", "").replace("/", "").replace(":", "").replace("-", "").isdigit() else "NN"
        for suffix, tag in _SUFFIX_TAGS:
            if lowered.endswith(suffix) and len(lowered) > len(suffix) + 2:
                return tag
        if lowered.endswith("s") and not lowered.endswith(("ss", "us", "is")) and len(lowered) > 3:
            return "NNS"
        return "NN"

    async def tag(self, words: Sequence[str]) -> list[str]:
        return [self._tag_word(w) for w in words]


# --- Chunks ---


NP_TAGS = frozenset({"DT", "PDT", "PRP$", "POS", "CD", "JJ", "JJR", "JJS", "NN", "NNS", "NNP", "NNPS"})
NP_HEADS = frozenset({"NN", "NNS", "NNP", "NNPS", "CD"})


class RuleChunker(ChunkerInterface):
    """Tag-pattern shallow parser producing NP, PP, VP, ADJP and ADVP chunks.

    Prepositions are single-token PP chunks, so "pain in chest" chunks as
    NP PP NP.
    """

    async def chunk(self, words: Sequence[str], tags: Sequence[str]) -> list[tuple[int, int, str]]:
        if len(words) != len(tags):
            raise ValueError(f"got {len(words)} words but {len(tags)} tags")
        chunks: list[tuple[int, int, str]] = []
        i, n = 0, len(tags)
        while i < n:
            tag = tags[i]
            if tag in ("PRP", "WP"):
                chunks.append((i, i + 1, "NP"))
                i += 1
            elif tag in NP_TAGS:
                j = i
                while j < n and tags[j] in NP_TAGS:
                    j += 1
                if any(t in NP_HEADS for t in tags[i:j]):
                    chunks.append((i, j, "NP"))
                elif all(t.startswith("JJ") for t in tags[i:j]):
                    chunks.append((i, j, "ADJP"))
                i = j
            elif tag in ("IN", "TO"):
                chunks.append((i, i + 1, "PP"))
                i += 1
            elif tag.startswith("VB") or tag == "MD":
                j = i + 1
                while j < n and (tags[j].startswith("VB") or tags[j] in ("MD", "RB")):
                    j += 1
                chunks.append((i, j, "VP"))
                i = j
            elif tag.startswith("RB"):
                chunks.append((i, i + 1, "ADVP"))
                i += 1
            else:
                i += 1
        return chunks


# --- Lexical normalization ---


class SuffixNormalizer(LexicalNormalizerInterface):
    """Lower-case, then strip regular English inflections.

    ``exceptions`` maps irregular forms to base forms and wins over the rules.
    """

    def __init__(self, exceptions: dict[str, str] | None = None):
        self.exceptions = {k.lower(): v.lower() for k, v in (exceptions or {}).items()}

    async def normalize(self, word: str) -> str:
        lowered = word.lower()
        if lowered in self.exceptions:
            return self.exceptions[lowered]
        if not lowered.isalpha() or len(lowered) <= 3:
            return lowered
        if lowered.endswith("ies") and len(lowered) > 4:
            return lowered[:-3] + "y"
        if lowered.endswith(("sses", "xes", "ches", "shes")):
            return lowered[:-2]
        if lowered.endswith("s") and not lowered.endswith(("ss", "us", "is")):
            return lowered[:-1]
        return lowered
