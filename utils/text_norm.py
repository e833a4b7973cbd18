"""Helpers for normalizing localized digits and numbers in free text."""
import re
from typing import List, Optional

# Arabic-Indic (U+0660..U+0669) and Extended Arabic-Indic (U+06F0..U+06F9)
DIGIT_MAP = {
    '٠': '0', '١': '1', '٢': '2', '٣': '3', '٤': '4',
    '٥': '5', '٦': '6', '٧': '7', '٨': '8', '٩': '9',
    '۰': '0', '۱': '1', '۲': '2', '۳': '3', '۴': '4',
    '۵': '5', '۶': '6', '۷': '7', '۸': '8', '۹': '9',
    '٫': '.',  # Arabic decimal separator
    '٬': '',   # Arabic thousands separator
}
_TRANSLATION = str.maketrans(DIGIT_MAP)

_GROUPED_RE = re.compile(r"(?<![\d.])\d{1,3}(?:,\d{3})+(?![\d])")
_NUMBER_RE = re.compile(r"\d+(?:\.\d+)?")
_ARABIC_SCRIPT_RE = re.compile("[\u0600-\u06FF]")


def normalize_digits(text: str) -> str:
    """Folds localized digit glyphs to ASCII and collapses `1,000`-style grouping."""
    folded = (text or "").translate(_TRANSLATION)
    return _GROUPED_RE.sub(lambda m: m.group(0).replace(",", ""), folded)


def find_numbers(text: str) -> List[float]:
    return [float(n) for n in _NUMBER_RE.findall(normalize_digits(text))]


def parse_number(value: str) -> Optional[float]:
    """Parses a single number out of a string such as "50", "٥٠ جنيه" or "$1,250.50"."""
    numbers = _NUMBER_RE.findall(normalize_digits(value))
    if len(numbers) != 1:
        return None
    return float(numbers[0])


def has_arabic_script(text: str) -> bool:
    return bool(_ARABIC_SCRIPT_RE.search(text or ""))
