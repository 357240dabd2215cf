from __future__ import annotations

from datetime import date

import pytest

from familytree.cards import calculate_age, format_date, format_person_card, get_initials


class TestCalculateAge:
    def test_floors_to_completed_years(self, fixed_today: date) -> None:
        assert calculate_age("1980-01-01", today=fixed_today) == 44

    def test_birthday_not_reached_yet(self, fixed_today: date) -> None:
        assert calculate_age("1980-06-02", today=fixed_today) == 43

    def test_birthday_today(self, fixed_today: date) -> None:
        assert calculate_age("1980-06-01", today=fixed_today) == 44

    @pytest.mark.parametrize(
        "birth",
        [date(1950, 2, 28), date(1964, 12, 31), date(2000, 6, 1), date(2023, 7, 1)],
    )
    def test_matches_year_difference_rule(self, birth: date, fixed_today: date) -> None:
        expected = fixed_today.year - birth.year
        if (fixed_today.month, fixed_today.day) < (birth.month, birth.day):
            expected -= 1
        assert calculate_age(birth, today=fixed_today) == expected

    def test_uses_death_date_when_present(self, fixed_today: date) -> None:
        assert calculate_age("1900-03-10", "1970-03-09", today=fixed_today) == 69

    def test_unparseable_dates(self, fixed_today: date) -> None:
        assert calculate_age("soon", today=fixed_today) is None
        assert calculate_age(None, today=fixed_today) is None
        assert calculate_age("1900-01-01", "later", today=fixed_today) is None

    def test_negative_is_none(self, fixed_today: date) -> None:
        assert calculate_age("2030-01-01", today=fixed_today) is None


def test_initials() -> None:
    assert get_initials("Ann Lee") == "AL"
    assert get_initials("mary jane watson") == "MJ"
    assert get_initials("Cher") == "C"
    assert get_initials("") == "?"
    assert get_initials(None) == "?"


def test_format_date() -> None:
    assert format_date("1980-01-15") == "Jan 15, 1980"
    assert format_date(date(2001, 12, 3)) == "Dec 3, 2001"
    assert format_date("sometime in 1900") == "sometime in 1900"
    assert format_date(None) is None


class TestFormatPersonCard:
    def test_living_person_without_relationships(self, fixed_today: date) -> None:
        card = format_person_card(
            {"id": 1, "name": "Ann Lee", "birth_date": "2000-01-01", "death_date": None},
            [],
            today=fixed_today,
        )
        assert card is not None
        assert card["initials"] == "AL"
        assert card["status"] == "living"
        assert card["children_count"] == 0
        assert card["has_partner"] is False
        assert card["age"] == 24
        assert card["image"] is None

    def test_absent_person(self) -> None:
        assert format_person_card(None) is None

    def test_counts_only_relationships_touching_person(self, fixed_today: date) -> None:
        rels = [
            {"id": 1, "person_id1": 1, "person_id2": 2, "type": "spouse"},
            {"id": 2, "person_id1": 1, "person_id2": 3, "type": "parent"},
            {"id": 3, "person_id1": 1, "person_id2": 4, "type": "parent"},
            {"id": 4, "person_id1": 5, "person_id2": 1, "type": "parent"},
            {"id": 5, "person_id1": 8, "person_id2": 9, "type": "spouse"},
        ]
        card = format_person_card(
            {"id": 1, "name": "John Doe", "birth_date": date(1980, 1, 1), "death_date": date(2020, 1, 1)},
            rels,
            today=fixed_today,
        )
        assert card["relationship_count"] == 4
        assert card["children_count"] == 2
        assert card["has_partner"] is True
        assert card["status"] == "deceased"
        assert card["age"] == 40
        assert card["birth_date"] == "1980-01-01"

    def test_bad_input_degrades(self) -> None:
        card = format_person_card({"id": 7, "name": "", "birth_date": "??"})
        assert card["age"] is None
        assert card["initials"] == "?"
        assert card["status"] == "living"
