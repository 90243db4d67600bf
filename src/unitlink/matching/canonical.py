"""Text canonicalization for court unit and role names.

Unit names arrive as free text with inconsistent case, accents, dashes and
abbreviations ("1ª VT de SP", "1a Vara do Trabalho de São Paulo"). The
Canonicalizer folds them into a comparable form and extracts the significant
tokens used by the similarity metrics.

Each session owns its own Canonicalizer; the memo caches are bounded and
never evict, so a long session cannot grow them without limit.
"""

import re
import unicodedata
from typing import Any

TokenSet = tuple[str, ...]

DEFAULT_CACHE_CAPACITY = 1000

# Compared after accent folding, so only the folded spelling is listed.
STOP_WORDS = frozenset({
    # Articles
    "a", "o", "as", "os", "um", "uma", "uns", "umas",
    # Prepositions
    "de", "da", "do", "das", "dos", "em", "na", "no", "nas", "nos",
    "para", "por", "com", "sem", "sobre", "sob", "entre", "ante",
    "apos", "ate", "desde", "contra", "perante",
    # Conjunctions
    "e", "ou", "mas", "que", "se", "como", "quando", "onde",
    # Vocabulary shared by most unit names
    "tribunal", "vara", "juizado", "comarca", "foro", "secao",
    "regional", "federal", "estadual", "municipal", "civil", "criminal",
    "trabalhista", "eleitoral", "militar", "especial", "especializada",
    "civel", "fazenda", "publica", "familia", "sucessoes", "orfaos",
    "execucao", "execucoes", "divisao", "divex", "falencia", "recuperacao",
    "empresarial", "consumidor", "ambiental", "agraria", "previdenciaria",
    "acidente", "trabalho", "violencia", "domestica", "familiar",
    "infancia", "juventude", "idoso", "penal",
})

ABBREVIATIONS: dict[str, str] = {
    # Court types
    "vf": "vara federal",
    "vc": "vara civil",
    "vcrim": "vara criminal",
    "vt": "vara trabalhista",
    "je": "juizado especial",
    "jec": "juizado especial civil",
    "jecrim": "juizado especial criminal",
    "jef": "juizado especial federal",
    "trf": "tribunal regional federal",
    "trt": "tribunal regional trabalho",
    "tre": "tribunal regional eleitoral",
    "tjsp": "tribunal justica sao paulo",
    "tjrj": "tribunal justica rio janeiro",
    "tjmg": "tribunal justica minas gerais",
    "tjrs": "tribunal justica rio grande sul",
    "tjpr": "tribunal justica parana",
    "tjsc": "tribunal justica santa catarina",
    "tjgo": "tribunal justica goias",
    "tjba": "tribunal justica bahia",
    "tjpe": "tribunal justica pernambuco",
    "tjce": "tribunal justica ceara",
    "tjdf": "tribunal justica distrito federal",
    "tjmt": "tribunal justica mato grosso",
    "tjms": "tribunal justica mato grosso sul",
    "tjro": "tribunal justica rondonia",
    "tjac": "tribunal justica acre",
    "tjam": "tribunal justica amazonas",
    "tjrr": "tribunal justica roraima",
    "tjap": "tribunal justica amapa",
    "tjpa": "tribunal justica para",
    "tjto": "tribunal justica tocantins",
    "tjma": "tribunal justica maranhao",
    "tjpi": "tribunal justica piaui",
    "tjrn": "tribunal justica rio grande norte",
    "tjpb": "tribunal justica paraiba",
    "tjal": "tribunal justica alagoas",
    "tjse": "tribunal justica sergipe",
    "tjes": "tribunal justica espirito santo",
    # States
    "sp": "sao paulo",
    "rj": "rio janeiro",
    "mg": "minas gerais",
    "rs": "rio grande sul",
    "pr": "parana",
    "sc": "santa catarina",
    "go": "goias",
    "ba": "bahia",
    "pe": "pernambuco",
    "ce": "ceara",
    "df": "distrito federal",
    "mt": "mato grosso",
    "ms": "mato grosso sul",
    "ro": "rondonia",
    "ac": "acre",
    "am": "amazonas",
    "rr": "roraima",
    "ap": "amapa",
    "pa": "para",
    "to": "tocantins",
    "ma": "maranhao",
    "pi": "piaui",
    "rn": "rio grande norte",
    "pb": "paraiba",
    "al": "alagoas",
    "se": "sergipe",
    "es": "espirito santo",
    # Execution divisions
    "divex": "divisao execucao",
    "div": "divisao",
    "exec": "execucao",
    "exe": "execucao",
}

_DASHES = re.compile(r"[‐‑‒–—―−]")
_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_ORDINAL = re.compile(r"^(\d+)[ao]$")
_NUMERAL = re.compile(r"^\d+$")
_DIGIT_GROUP = re.compile(r"\d+")


def _build_phrase_pattern(table: dict[str, str]) -> re.Pattern:
    # Longest keys first so "tjsp" wins over "tj" style prefixes.
    keys = sorted(table, key=len, reverse=True)
    alternation = "|".join(re.escape(k) for k in keys)
    return re.compile(rf"(?<![a-z0-9])(?:{alternation})(?![a-z0-9])")


def normalize_text(text: Any) -> str:
    """Fold case, accents, dashes and punctuation (uncached)."""
    if not isinstance(text, str) or not text:
        return ""

    folded = unicodedata.normalize("NFD", text.lower())
    folded = "".join(ch for ch in folded if not unicodedata.combining(ch))
    folded = _DASHES.sub("-", folded)
    folded = _DISALLOWED.sub(" ", folded)
    return _WHITESPACE.sub(" ", folded).strip()


class Canonicalizer:
    """Normalizes, expands and tokenizes free-text names.

    Args:
        cache_capacity: Maximum entries per memo cache. Once full, new
            inputs are computed but not stored.
        abbreviations: Abbreviation table; defaults to ABBREVIATIONS.
        stop_words: Stop-word set; defaults to STOP_WORDS.
    """

    def __init__(
        self,
        cache_capacity: int = DEFAULT_CACHE_CAPACITY,
        abbreviations: dict[str, str] | None = None,
        stop_words: frozenset[str] | None = None,
    ):
        self.cache_capacity = cache_capacity
        self.abbreviations = dict(abbreviations if abbreviations is not None else ABBREVIATIONS)
        self.stop_words = stop_words if stop_words is not None else STOP_WORDS
        self._phrase_pattern = (
            _build_phrase_pattern(self.abbreviations) if self.abbreviations else None
        )
        self._normalized: dict[str, str] = {}
        self._tokens: dict[tuple[str, int], TokenSet] = {}

    def normalize(self, text: Any) -> str:
        """Fold case, accents, dashes and punctuation.

        Non-string or empty input yields an empty string.
        """
        if not isinstance(text, str) or not text:
            return ""

        cached = self._normalized.get(text)
        if cached is not None:
            return cached

        result = normalize_text(text)

        if len(self._normalized) < self.cache_capacity:
            self._normalized[text] = result

        return result

    def expand_abbreviations(self, normalized_text: str) -> str:
        """Replace known abbreviations with their expansion.

        Whole tokens are looked up first; a whole-word pass then catches
        abbreviations glued to others by hyphens ("vt-sp").
        """
        if not normalized_text:
            return ""

        words = [self.abbreviations.get(w, w) for w in normalized_text.split(" ")]
        expanded = " ".join(words)

        if self._phrase_pattern is None or "-" not in expanded:
            return expanded

        expanded = self._phrase_pattern.sub(
            lambda m: f" {self.abbreviations[m.group(0)]} ", expanded
        )
        return _WHITESPACE.sub(" ", expanded).strip()

    def tokenize(self, text: Any, min_length: int = 2) -> TokenSet:
        """Extract the significant tokens of a text.

        normalize -> expand abbreviations -> split -> fold ordinals ->
        drop short tokens, stop words and bare numerals -> dedupe.
        """
        if not isinstance(text, str) or not text:
            return ()

        key = (text, min_length)
        cached = self._tokens.get(key)
        if cached is not None:
            return cached

        expanded = self.expand_abbreviations(self.normalize(text))

        tokens: list[str] = []
        seen: set[str] = set()
        for raw in expanded.split():
            token = _ORDINAL.sub(r"\1", raw)
            if len(token) < min_length:
                continue
            if token in self.stop_words or _NUMERAL.match(token):
                continue
            if token not in seen:
                seen.add(token)
                tokens.append(token)

        result = tuple(tokens)
        if len(self._tokens) < self.cache_capacity:
            self._tokens[key] = result

        return result

    def digit_groups(self, text: Any) -> frozenset[int]:
        """Numbers mentioned in a text ("1ª", "01a" and "1" all give 1)."""
        return frozenset(int(g) for g in _DIGIT_GROUP.findall(self.normalize(text)))

    def cache_stats(self) -> dict[str, dict[str, int]]:
        """Sizes of the memo caches."""
        return {
            "normalized": {"size": len(self._normalized), "capacity": self.cache_capacity},
            "tokens": {"size": len(self._tokens), "capacity": self.cache_capacity},
        }

    def clear_caches(self) -> None:
        """Drop all memoized normalizations and token sets."""
        self._normalized.clear()
        self._tokens.clear()
