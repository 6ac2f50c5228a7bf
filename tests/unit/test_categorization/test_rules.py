import pytest

from expense_dashboard.categorization.rules import (
    CATEGORY_DESCRIPTIONS,
    categorize_by_keywords,
    categorize_by_mcc,
    find_category_mention,
    suggest_alternatives,
)
from expense_dashboard.schemas.categorization import ExpenseCategory


def test_keywords_insurance_three_of_four(make_transaction) -> None:
    result = categorize_by_keywords(make_transaction(merchant_name="Acme Insurance premium coverage"))
    assert result.category == "Insurance"
    assert result.confidence == pytest.approx(0.75)
    assert result.method == "keyword"
    assert result.reasoning == "Keyword match: insurance, premium, coverage"


def test_keywords_search_descriptor_memo_and_mcc_description(make_transaction) -> None:
    result = categorize_by_keywords(
        make_transaction(
            merchant_name="Vendor",
            merchant_descriptor="STAPLES",
            memo="paper and pen",
            merchant_category_code_description="Office supplies",
        )
    )
    # staples, paper, pen, office, supplies
    assert result.category == "Office Supplies"
    assert result.confidence == pytest.approx(5 / 7)


def test_keywords_are_case_insensitive(make_transaction) -> None:
    result = categorize_by_keywords(make_transaction(merchant_name="LYFT RIDE"))
    assert result.category == "Travel & Transportation"


def test_keywords_confidence_capped(make_transaction) -> None:
    result = categorize_by_keywords(
        make_transaction(merchant_name="insurance premium coverage policy")
    )
    assert result.category == "Insurance"
    assert result.confidence == 0.9


def test_keywords_tie_goes_to_earlier_category(make_transaction) -> None:
    # one of seven office keywords vs one of seven hardware keywords
    result = categorize_by_keywords(make_transaction(merchant_name="desk monitor"))
    assert result.category == "Office Supplies"


def test_keywords_no_match(make_transaction) -> None:
    result = categorize_by_keywords(make_transaction(merchant_name="Zzyzx"))
    assert result.category == "Other"
    assert result.confidence == 0
    assert result.reasoning == "No keyword matches found"


def test_mcc_exact_code(make_transaction) -> None:
    result = categorize_by_mcc(
        make_transaction(merchant_category_code="5734", merchant_category_code_description="Computer Software Stores")
    )
    assert result.category == "Software & SaaS"
    assert result.confidence == 0.8
    assert result.method == "mcc"
    assert "5734" in result.reasoning


def test_mcc_description_first_rule_wins(make_transaction) -> None:
    # "software" is listed before "computer"
    result = categorize_by_mcc(
        make_transaction(merchant_category_code="9999", merchant_category_code_description="Computer Software Services")
    )
    assert result.category == "Software & SaaS"
    assert result.confidence == 0.7


def test_mcc_description_hotel(make_transaction) -> None:
    result = categorize_by_mcc(make_transaction(merchant_category_code_description="Hotels and Lodging"))
    assert result.category == "Travel & Transportation"
    assert result.confidence == 0.7


def test_mcc_no_match(make_transaction) -> None:
    result = categorize_by_mcc(make_transaction(merchant_category_code="0000"))
    assert result.category == "Other"
    assert result.confidence == 0.3
    assert result.reasoning == "No MCC mapping found for code: 0000"


def test_find_category_mention() -> None:
    assert find_category_mention("I think this is software & saas, probably") == ExpenseCategory.SOFTWARE_SAAS
    assert find_category_mention("no idea") is None
    assert find_category_mention("") is None


def test_suggest_alternatives_scores_hits(make_transaction) -> None:
    alternatives = suggest_alternatives(
        make_transaction(merchant_name="Starbucks coffee", memo="team lunch"), exclude="Other"
    )
    assert alternatives == [
        (ExpenseCategory.MEALS_ENTERTAINMENT, 0.3, "Alternative keyword match"),
    ]


def test_suggest_alternatives_excludes_primary(make_transaction) -> None:
    alternatives = suggest_alternatives(
        make_transaction(merchant_name="Starbucks"), exclude="Meals & Entertainment"
    )
    assert alternatives == []


def test_category_descriptions_cover_every_category() -> None:
    assert set(CATEGORY_DESCRIPTIONS) == {c.value for c in ExpenseCategory}
