"""Keyword/regex based transaction extractor that runs without any external call."""
import math
import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Pattern, Tuple

from models.transaction import ExtractionResult
from utils.text_norm import find_numbers, has_arabic_script

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_EN = "Other"
DEFAULT_CATEGORY_AR = "أخرى"


@dataclass(frozen=True)
class ClassificationPolicy:
    """
    How to resolve a message whose direction is ambiguous (both or neither
    keyword sets matched).

    default_type=None turns ambiguity into "could not classify".
    """
    default_type: Optional[str] = "expense"
    require_direction_keyword: bool = False
    default_category: Optional[str] = None


def _en(*words: str) -> str:
    return r"\b(?:" + "|".join(words) + r")\b"


def _ar(*words: str) -> str:
    # Arabic words carry attached prefixes (ال, و, ب), so match as substrings
    return "(?:" + "|".join(words) + ")"


def _compile(*parts: str) -> Pattern[str]:
    return re.compile("|".join(parts), re.IGNORECASE)


EXPENSE_RE = _compile(
    # "got paid" is income, so a bare "paid" only counts when it does not follow got/get
    _en("spent", "spend", "spending", "bought", "buy", r"(?<!got )(?<!get )(?<!getting )paid", "pay", "paying", "lost",
        "cost", "costs", "purchased?", "expense", "charged", "withdrew", "gave"),
    _ar("صرفت", "اشتريت", "دفعت", "انفقت", "أنفقت", "خسرت", "مصروف", "مصاريف", "تكلفة", "اتخصم"),
)

INCOME_RE = _compile(
    _en("received", "receive", "earned", "earn", "salary", "bonus", "income", r"(?:got|get|getting) paid",
        "refund", "refunded", "profit", "won", "deposit", "deposited"),
    _ar("استلمت", "ربحت", "دخل", "راتب", "مرتب", "مكافأة", "مكافاة", "ايراد", "إيراد",
        "حصلت على", "كسبت"),
)

# Ordered: the first matching rule wins.
CATEGORY_RULES: List[Tuple[Pattern[str], str]] = [
    (_compile(_en("salary", "payroll", "wage", "wages", "paycheck")), "Salary"),
    (_compile(_en("coffee", "latte", "cappuccino", "espresso", "starbucks", "cafe")), "Coffee"),
    (_compile(_en("food", "lunch", "dinner", "breakfast", "restaurant", "meal", "groceries", "grocery", "pizza")), "Food"),
    (_compile(_en("transport", "bus", "train", "taxi", "uber", "metro", "fuel", "gas", "petrol", "car", "ticket")), "Transport"),
    (_compile(_en("rent", "landlord", "lease")), "Rent"),
    (_compile(_en("shopping", "clothes", "shoes", "shirt", "mall", "amazon")), "Shopping"),
    (_compile(_en("doctor", "medicine", "pharmacy", "hospital", "health")), "Health"),
    (_compile(_en("movie", "cinema", "netflix", "concert", "game", "trip", "vacation")), "Entertainment"),
    (_compile(_en("electricity", "water bill", "internet", "phone bill", "bill", "bills")), "Bills"),
    (_compile(_ar("طعام", "مطعم", "أكل", "اكل", "وجبة", "غداء", "عشاء", "فطار")), "طعام"),
    (_compile(_ar("مواصلات", "سيارة", "بنزين", "تاكسي", "اوبر", "أوبر", "مترو", "اتوبيس")), "مواصلات"),
    (_compile(_ar("راتب", "مرتب", "معاش")), "راتب"),
    (_compile(_ar("تسوق", "ملابس", "شراء")), "تسوق"),
    (_compile(_ar("صحة", "دواء", "طبيب", "دكتور", "صيدلية")), "صحة"),
    (_compile(_ar("ترفيه", "سينما", "رحلة")), "ترفيه"),
    (_compile(_ar("إيجار", "ايجار")), "إيجار"),
    (_compile(_ar("فاتورة", "فواتير", "كهرباء", "انترنت")), "فواتير"),
]


def classify_direction(text: str, policy: ClassificationPolicy) -> Optional[str]:
    is_expense = bool(EXPENSE_RE.search(text))
    is_income = bool(INCOME_RE.search(text))

    if is_expense != is_income:
        return "expense" if is_expense else "income"

    if not is_expense and policy.require_direction_keyword:
        return None
    return policy.default_type


def extract_amount(text: str) -> Optional[float]:
    """Largest number in the text, after folding localized digits."""
    numbers = find_numbers(text)
    if not numbers:
        return None
    amount = max(numbers)
    # A long enough digit run overflows to inf
    if not math.isfinite(amount) or amount <= 0:
        return None
    return amount


def categorize(text: str, policy: ClassificationPolicy) -> str:
    for pattern, category in CATEGORY_RULES:
        if pattern.search(text):
            return category
    if policy.default_category:
        return policy.default_category
    return DEFAULT_CATEGORY_AR if has_arabic_script(text) else DEFAULT_CATEGORY_EN


def analyze(text: str, policy: Optional[ClassificationPolicy] = None) -> Optional[ExtractionResult]:
    """
    Classifies a single free-text message into an extraction result.

    Returns None when no positive amount is found, or when the direction
    cannot be decided under the given policy.
    """
    policy = policy or ClassificationPolicy()
    original = (text or "").strip()
    if not original:
        return None
    normalized = original.lower()

    tx_type = classify_direction(normalized, policy)
    if tx_type is None:
        logger.info(f"Could not classify direction of message: {original[:50]}")
        return None

    amount = extract_amount(normalized)
    if amount is None:
        logger.info(f"No amount found in message: {original[:50]}")
        return None

    return ExtractionResult(
        type=tx_type,
        amount=amount,
        category=categorize(normalized, policy),
        description=original,
    )
