"""Tests for the service price list and health questions."""

import pytest

from clinic.catalog import HEALTH_QUESTIONS, SERVICES, missing_health_answers


class TestServiceCatalog:
    """Tests for ServiceCatalog lookups."""

    def test_find_option(self):
        option = SERVICES.find_option("Filling (PASTA)", "Permanent")
        assert option.price == 1150
        assert option.minutes == 60

    def test_unknown_category_or_option(self):
        assert SERVICES.find_option("Tattoo", "Small") is None
        assert SERVICES.find_option("Filling (PASTA)", "Gold") is None

    def test_same_option_name_in_different_categories(self):
        """Option names are only unique within their category."""
        crown = SERVICES.find_option("Crown / Bridge (JACKET) - per unit", "Temporary")
        filling = SERVICES.find_option("Filling (PASTA)", "Temporary")
        assert (crown.price, filling.price) == (300, 400)

    @pytest.mark.parametrize("category", [
        "Crown / Bridge (JACKET) - per unit",
        "Complete Denture (Upper or Lower)",
        "Orthodontics (BRACES)",
        "Retainer",
        "Partial Denture",
        "Veneers",
        "TMJ Therapy",
    ])
    def test_multi_visit_categories(self, category):
        assert SERVICES.is_multi_visit(category)

    @pytest.mark.parametrize("category", ["Cleaning (LINIS)", "Whitening", "Root Canal Therapy", "Nope"])
    def test_single_visit_categories(self, category):
        assert not SERVICES.is_multi_visit(category)

    def test_every_duration_is_whole_slots(self):
        for category in SERVICES.categories:
            for option in category.options:
                assert option.minutes in (30, 60), (category.name, option.name)
                assert option.price > 0

    def test_as_dicts(self):
        data = SERVICES.as_dicts()
        assert len(data) == len(SERVICES.categories)
        cleaning = data[0]
        assert cleaning["category"] == "Cleaning (LINIS)"
        assert cleaning["options"][0] == {"name": "Mild to Average Deposit (Tartar)", "price": 650, "minutes": 30}


class TestHealthQuestions:
    """Tests for the health declaration checklist."""

    def test_ten_questions(self):
        assert [qid for qid, _ in HEALTH_QUESTIONS] == [f"q{i}" for i in range(1, 11)]

    def test_all_answered(self):
        answers = {f"q{i}": "yes" if i == 3 else "No" for i in range(1, 11)}
        assert missing_health_answers(answers) == []

    def test_missing_and_invalid_answers(self):
        answers = {f"q{i}": "no" for i in range(1, 11)}
        del answers["q2"]
        answers["q7"] = "maybe"
        assert missing_health_answers(answers) == ["q2", "q7"]
