"""Resolve raw rota names to employee ids within one organization."""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from difflib import SequenceMatcher

from staffdesk.models.employee import Employee

MATCH_RESOLVED = "resolved"
MATCH_AMBIGUOUS = "ambiguous"
MATCH_UNRESOLVED = "unresolved"

STRATEGY_EXACT = "exact"
STRATEGY_NORMALIZED = "normalized"
STRATEGY_FUZZY = "fuzzy"

_PUNCT_RE = re.compile(r"[^\w\s]")
_WS_RE = re.compile(r"\s+")
_MIN_TOKEN_LEN = 2


@dataclass(frozen=True)
class MatchResult:
    raw_name: str
    status: str
    employee_id: int | None = None
    employee_name: str | None = None
    strategy: str | None = None
    candidates: tuple[str, ...] = field(default_factory=tuple)

    @property
    def resolved(self) -> bool:
        return self.status == MATCH_RESOLVED


def normalize_name(name: str) -> str:
    """'  O'Brien,  Mary-Jane ' -> 'obrien mary jane'."""
    text = unicodedata.normalize("NFKD", name or "")
    text = "".join(c for c in text if not unicodedata.combining(c))
    text = text.lower().replace("-", " ")
    text = _PUNCT_RE.sub("", text)
    return _WS_RE.sub(" ", text).strip()


def _tokens(normalized: str) -> set[str]:
    return {t for t in normalized.split(" ") if len(t) >= _MIN_TOKEN_LEN}


class EmployeeMatcher:
    """Name matcher over one organization's employee directory.

    Stages run in order and stop at the first stage that finds anything:
    case-insensitive exact, normalized equality, then fuzzy (token overlap or
    sequence similarity). Several best candidates within a stage make the name
    ambiguous. Results are memoized per raw name for the life of the matcher.
    """

    def __init__(self, employees: list[Employee], similarity_threshold: float = 0.85):
        self.similarity_threshold = similarity_threshold
        self._entries = [
            (e.id, e.full_name, (e.full_name or "").strip().lower(), normalize_name(e.full_name))
            for e in employees
        ]
        self._cache: dict[str, MatchResult] = {}

    def match(self, raw_name: str) -> MatchResult:
        if raw_name in self._cache:
            return self._cache[raw_name]
        result = self._match(raw_name)
        self._cache[raw_name] = result
        return result

    def match_all(self, raw_names: list[str]) -> dict[str, MatchResult]:
        return {name: self.match(name) for name in raw_names}

    def _match(self, raw_name: str) -> MatchResult:
        lowered = _WS_RE.sub(" ", (raw_name or "").strip().lower())
        if not lowered:
            return MatchResult(raw_name=raw_name, status=MATCH_UNRESOLVED)

        exact = [(i, n) for i, n, low, _ in self._entries if low == lowered]
        if exact:
            return self._pick(raw_name, exact, STRATEGY_EXACT)

        normalized = normalize_name(raw_name)
        same = [(i, n) for i, n, _, norm in self._entries if norm and norm == normalized]
        if same:
            return self._pick(raw_name, same, STRATEGY_NORMALIZED)

        best_score = 0.0
        best: list[tuple[int, str]] = []
        for emp_id, name, _, norm in self._entries:
            score = self._fuzzy_score(normalized, norm)
            if score <= 0:
                continue
            if score > best_score:
                best_score, best = score, [(emp_id, name)]
            elif score == best_score:
                best.append((emp_id, name))
        if best:
            return self._pick(raw_name, best, STRATEGY_FUZZY)
        return MatchResult(raw_name=raw_name, status=MATCH_UNRESOLVED)

    def _fuzzy_score(self, raw_norm: str, emp_norm: str) -> float:
        """Token overlap scores in (1, 2]; plain similarity above the threshold scores in [t, 1]."""
        if not raw_norm or not emp_norm:
            return 0.0
        raw_tokens, emp_tokens = _tokens(raw_norm), _tokens(emp_norm)
        if raw_tokens and emp_tokens:
            shorter, longer = sorted((raw_tokens, emp_tokens), key=len)
            if shorter <= longer:
                return 1.0 + len(shorter) / len(longer)
        ratio = SequenceMatcher(None, raw_norm, emp_norm).ratio()
        return ratio if ratio >= self.similarity_threshold else 0.0

    @staticmethod
    def _pick(raw_name: str, found: list[tuple[int, str]], strategy: str) -> MatchResult:
        if len(found) > 1:
            return MatchResult(
                raw_name=raw_name,
                status=MATCH_AMBIGUOUS,
                strategy=strategy,
                candidates=tuple(sorted(n for _, n in found)),
            )
        emp_id, name = found[0]
        return MatchResult(
            raw_name=raw_name,
            status=MATCH_RESOLVED,
            employee_id=emp_id,
            employee_name=name,
            strategy=strategy,
        )
