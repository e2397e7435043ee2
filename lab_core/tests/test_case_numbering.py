import datetime

import pytest

from lab_core.models import CaseSequence
from lab_core.services.numbering import format_case_number, generate_case_number


def test_format_case_number_pads_the_counter(settings):
    settings.CASE_NUMBER_PREFIX = "L"
    settings.CASE_NUMBER_PADDING = 5

    assert format_case_number(2026, 7) == "L-2026-00007"


def test_format_case_number_follows_settings(settings):
    settings.CASE_NUMBER_PREFIX = "LX"
    settings.CASE_NUMBER_PADDING = 3

    assert format_case_number(2026, 42) == "LX-2026-042"


@pytest.mark.django_db
def test_case_numbers_are_sequential_within_a_year():
    when = datetime.datetime(2026, 3, 1, tzinfo=datetime.timezone.utc)

    numbers = [generate_case_number(when=when) for _ in range(3)]

    assert numbers == ["L-2026-00001", "L-2026-00002", "L-2026-00003"]
    assert CaseSequence.objects.get(year=2026).last_value == 3


@pytest.mark.django_db
def test_case_numbers_restart_each_year():
    generate_case_number(when=datetime.datetime(2025, 12, 31, tzinfo=datetime.timezone.utc))
    generate_case_number(when=datetime.datetime(2025, 12, 31, tzinfo=datetime.timezone.utc))

    first_of_year = generate_case_number(when=datetime.datetime(2026, 1, 1, tzinfo=datetime.timezone.utc))

    assert first_of_year == "L-2026-00001"


@pytest.mark.django_db
def test_created_cases_get_unique_numbers(case_factory):
    numbers = {case_factory().case_number for _ in range(5)}

    assert len(numbers) == 5
