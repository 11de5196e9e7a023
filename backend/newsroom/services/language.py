"""Script-based language detection for en/si/ta content."""

from newsroom.constants import Language

SINHALA_RANGE = (0x0D80, 0x0DFF)
TAMIL_RANGE = (0x0B80, 0x0BFF)


def script_counts(text: str) -> dict[str, int]:
    """Count letters by script: sinhala, tamil, latin, other."""
    counts = {"si": 0, "ta": 0, "latin": 0, "other": 0}
    for char in text:
        if not char.isalpha() and not _in_range(char, SINHALA_RANGE) and not _in_range(char, TAMIL_RANGE):
            continue
        if _in_range(char, SINHALA_RANGE):
            counts["si"] += 1
        elif _in_range(char, TAMIL_RANGE):
            counts["ta"] += 1
        elif char.isascii():
            counts["latin"] += 1
        else:
            counts["other"] += 1
    return counts


def script_ratio(text: str, language: str) -> float:
    """Share of letters in `text` written in the script of `language`."""
    counts = script_counts(text)
    total = sum(counts.values())
    if total == 0:
        return 0.0
    key = "latin" if language == Language.EN.value else language
    return counts.get(key, 0) / total


def detect_language(text: str, hint: str | None = None) -> str:
    """
    Detect en, si or ta from the dominant script.

    Falls back to `hint` (usually the source's language tag) and then
    to "unk" when no script dominates.
    """
    counts = script_counts(text)
    total = sum(counts.values())
    if total:
        if counts["si"] / total >= 0.3:
            return Language.SI.value
        if counts["ta"] / total >= 0.3:
            return Language.TA.value
        if counts["latin"] / total >= 0.6:
            return Language.EN.value
    return hint or Language.UNKNOWN.value


def _in_range(char: str, bounds: tuple[int, int]) -> bool:
    return bounds[0] <= ord(char) <= bounds[1]
