"""Heuristic quality scores for generated summaries and translations."""

import re
from dataclasses import dataclass, field

from newsroom.services.language import script_ratio
from newsroom.utils.text import extract_numbers, sentence_count, word_count

FORBIDDEN_PATTERNS: dict[str, re.Pattern[str]] = {
    "assistant_voice": re.compile(r"\bas an ai\b|\bi (?:cannot|can't|am unable)\b|\bi'm sorry\b", re.IGNORECASE),
    "placeholder": re.compile(r"\[(?:insert|placeholder|source|todo)[^\]]*\]|lorem ipsum|\bTBD\b", re.IGNORECASE),
    "markdown": re.compile(r"```|^#{1,6}\s|^\s*[-*]\s", re.MULTILINE),
    "emoji": re.compile("[\U0001f300-\U0001faff☀-➿]"),
}

MIN_SENTENCES = 3


@dataclass
class QualityReport:
    score: float
    word_count: int = 0
    issues: list[str] = field(default_factory=list)


def score_summary(
    text: str,
    *,
    min_words: int = 80,
    max_words: int = 700,
    source_texts: list[str] | None = None,
) -> QualityReport:
    """
    Score a summary from 0 to 1.

    Checks length bounds, sentence structure, forbidden patterns, shouting
    and numbers that appear in none of the sources.
    """
    text = (text or "").strip()
    if not text:
        return QualityReport(score=0.0, issues=["empty"])

    words = word_count(text)
    score = 1.0
    issues: list[str] = []

    if words < min_words:
        score -= 0.35
        issues.append("too_short")
    elif words > max_words:
        score -= 0.25
        issues.append("too_long")

    if sentence_count(text) < MIN_SENTENCES:
        score -= 0.2
        issues.append("too_few_sentences")

    for name, pattern in FORBIDDEN_PATTERNS.items():
        if pattern.search(text):
            score -= 0.3
            issues.append(f"forbidden_{name}")

    for line in text.splitlines():
        letters = [c for c in line if c.isalpha() and c.isascii()]
        if len(letters) >= 20 and all(c.isupper() for c in letters):
            score -= 0.1
            issues.append("all_caps")
            break

    if source_texts is not None and unsupported_numbers(text, source_texts):
        score -= 0.15
        issues.append("unsupported_numbers")

    return QualityReport(score=round(max(0.0, min(1.0, score)), 3), word_count=words, issues=issues)


def unsupported_numbers(summary: str, source_texts: list[str]) -> set[str]:
    """Numbers in `summary` that none of the sources mention."""
    known: set[str] = set()
    for source in source_texts:
        known |= extract_numbers(source)
    return extract_numbers(summary) - known


def score_translation(source: str, translated: str, target_lang: str, *, kind: str = "summary") -> float:
    """
    Score a translation from 0 to 1.

    Looks at the share of letters in the target script, the length ratio
    against the source, numbers carried over and untranslated output.
    """
    source = (source or "").strip()
    translated = (translated or "").strip()
    if not translated:
        return 0.0
    if translated == source:
        return 0.2

    score = 1.0
    ratio = script_ratio(translated, target_lang)
    if ratio < 0.5:
        score -= 0.6
    elif ratio < 0.8:
        score -= 0.2

    length_ratio = len(translated) / max(1, len(source))
    low, high = (0.3, 4.0) if kind == "headline" else (0.4, 3.0)
    if not low <= length_ratio <= high:
        score -= 0.2

    missing = extract_numbers(source) - extract_numbers(translated)
    if missing:
        score -= min(0.3, 0.1 * len(missing))

    return round(max(0.0, min(1.0, score)), 3)
