"""Role text extraction from scanned rows.

Some surfaces render the role in its own cell, others only as part of the
row text ("1ª Vara do Trabalho de Campinas | Secretário de Audiência |
01/02/2024"). RoleExtractor recovers the role phrase in the latter case.
"""

import re

from ..matching.canonical import normalize_text

ROLE_KEYWORDS = (
    "secretario", "secretaria", "assessor", "analista", "tecnico",
    "auxiliar", "escrivao", "oficial", "diretor", "chefe",
    "coordenador", "supervisor", "gerente", "audiencia",
)

_STOP = r"[^,\n\t|;\-\d]"

ROLE_PATTERNS = [
    re.compile(rf"(?:papel|perfil|cargo|fun[cç][aã]o)\s*:\s*({_STOP}+)", re.IGNORECASE),
    re.compile(rf"(secret[aá]ri[oa]{_STOP}*?de\s+audi[eê]ncia)", re.IGNORECASE),
    re.compile(rf"(secret[aá]ri[oa]{_STOP}*)", re.IGNORECASE),
    re.compile(rf"(assessora?{_STOP}*)", re.IGNORECASE),
    re.compile(rf"(analista{_STOP}*?judici[aá]ri[oa])", re.IGNORECASE),
    re.compile(rf"(analista{_STOP}*)", re.IGNORECASE),
    re.compile(rf"(t[eé]cnic[oa]{_STOP}*?judici[aá]ri[oa])", re.IGNORECASE),
    re.compile(rf"(t[eé]cnic[oa]{_STOP}*)", re.IGNORECASE),
    re.compile(rf"(auxiliar{_STOP}*)", re.IGNORECASE),
    re.compile(rf"(escriv[aã][oe]s?{_STOP}*)", re.IGNORECASE),
]


class RoleExtractor:
    """Finds a role phrase inside free row text."""

    def __init__(self, min_length: int = 5, max_length: int = 50):
        self.min_length = min_length
        self.max_length = max_length

    def looks_like_role(self, text: str | None) -> bool:
        """Whether a short text names a known role."""
        if not text:
            return False
        stripped = text.strip()
        if not self.min_length <= len(stripped) <= self.max_length:
            return False
        normalized = normalize_text(stripped)
        return any(keyword in normalized for keyword in ROLE_KEYWORDS)

    def extract(self, row_text: str | None) -> str | None:
        """Return the first role phrase found in the row, or None."""
        if not row_text:
            return None

        for pattern in ROLE_PATTERNS:
            match = pattern.search(row_text)
            if not match:
                continue
            candidate = match.group(1).strip()
            if self.looks_like_role(candidate):
                return candidate

        return None
