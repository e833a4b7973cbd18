import pytest

from utils.heuristic_extractor import ClassificationPolicy, analyze


def test_arabic_expense_with_food_category():
    r = analyze("صرفت 50 جنيه على الطعام")
    assert r is not None
    assert r.type == "expense"
    assert r.amount == 50
    assert r.category == "طعام"
    assert r.description == "صرفت 50 جنيه على الطعام"


def test_english_income_salary():
    r = analyze("received $1000 salary")
    assert r is not None
    assert r.type == "income"
    assert r.amount == 1000
    assert r.category == "Salary"


def test_arabic_indic_digits_match_ascii():
    a = analyze("صرفت ٥٠ جنيه على الطعام")
    b = analyze("صرفت 50 جنيه على الطعام")
    assert a.amount == b.amount == 50


def test_extended_digits_and_salary_category():
    r = analyze("استلمت الراتب ۵۰۰۰")
    assert r.type == "income"
    assert r.amount == 5000
    assert r.category == "راتب"


@pytest.mark.parametrize("amount", [7, 25, 130.5, 99999])
def test_largest_number_is_the_amount(amount):
    r = analyze(f"spent {amount} on coffee with 2 friends")
    assert r.amount == amount
    assert r.category == "Coffee"


def test_no_number_gives_none():
    assert analyze("spent money on lunch") is None
    assert analyze("صرفت فلوس على الأكل") is None


def test_zero_amount_gives_none():
    assert analyze("spent 0 on nothing") is None


def test_empty_text_gives_none():
    assert analyze("   ") is None


def test_transport_and_default_categories():
    assert analyze("paid 30 for a taxi").category == "Transport"
    assert analyze("دفعت ١٠٠ جنيه مواصلات").category == "مواصلات"
    assert analyze("paid 30 for stuff").category == "Other"
    assert analyze("دفعت 30 جنيه").category == "أخرى"


def test_first_category_rule_wins():
    # salary is listed before food
    assert analyze("got my salary 900 and spent some on lunch").category == "Salary"


def test_neither_keyword_uses_default_type():
    r = analyze("50 for lunch")
    assert r.type == "expense"
    assert r.category == "Food"


def test_both_keywords_use_default_type():
    text = "received 200 bonus and spent 50"
    assert analyze(text).type == "expense"
    assert analyze(text, ClassificationPolicy(default_type="income")).type == "income"
    assert analyze(text).amount == 200


def test_strict_policy_requires_keyword():
    policy = ClassificationPolicy(require_direction_keyword=True)
    assert analyze("50 for lunch", policy) is None
    assert analyze("spent 50 for lunch", policy).type == "expense"


def test_ambiguity_can_be_reported_instead_of_defaulted():
    policy = ClassificationPolicy(default_type=None)
    assert analyze("50 for lunch", policy) is None
    assert analyze("received 200 bonus and spent 50", policy) is None
    assert analyze("earned 200", policy).type == "income"


def test_policy_default_category():
    policy = ClassificationPolicy(default_category="Misc")
    assert analyze("paid 30 for stuff", policy).category == "Misc"


def test_grouped_amount():
    assert analyze("received 1,500 bonus").amount == 1500


def test_overflowing_amount_gives_none():
    assert analyze("spent " + "9" * 400 + " on coffee") is None


def test_got_paid_is_income():
    r = analyze("got paid 500 salary")
    assert r.type == "income"
    assert r.amount == 500
    assert analyze("I get paid 300 today").type == "income"
    assert analyze("paid 300 for rent").type == "expense"
