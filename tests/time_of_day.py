import pytest
from pydantic import ValidationError
from pytest_assume.plugin import assume

from adherence.helpers.exceptions import MalformedScheduleEntryError
from adherence.helpers.pydantic_types.time_of_day import TimeOfDay, parse_times
from adherence.models.medicine import LENIENT_CONTEXT, FrequencyEnum, MedicineModel


@pytest.mark.parametrize(
    "value, expected",
    [
        pytest.param("00:00", "00:00", id="midnight"),
        pytest.param("08:05", "08:05", id="two_digits"),
        pytest.param("8:05", "08:05", id="one_digit_hour"),
        pytest.param("23:59", "23:59", id="last_minute"),
    ],
)
def test_valid(value: str, expected: str) -> None:
    time = TimeOfDay(value)
    assume(time == expected)
    assume(time.hour == int(expected[:2]))
    assume(time.minute == int(expected[3:]))


@pytest.mark.parametrize(
    "value",
    [
        pytest.param("24:00", id="hour_overflow"),
        pytest.param("12:60", id="minute_overflow"),
        pytest.param("12:5", id="one_digit_minute"),
        pytest.param("1200", id="no_separator"),
        pytest.param("ab:cd", id="letters"),
        pytest.param("", id="empty"),
        pytest.param("8 AM", id="twelve_hours"),
    ],
)
def test_malformed(value: str) -> None:
    with pytest.raises(MalformedScheduleEntryError) as e:
        TimeOfDay(value)
    assume(e.value.value == value)
    # Also a ValueError, for Pydantic
    assume(isinstance(e.value, ValueError))


def test_matches() -> None:
    time = TimeOfDay("08:00")
    assume(time.matches(hour=8, minute=0))
    assume(not time.matches(hour=8, minute=1))
    assume(not time.matches(hour=7, minute=59))
    assume(not time.matches(hour=20, minute=0))


def test_parse_times() -> None:
    times, malformed = parse_times(["20:00", "8:00", "08:00", "25:00", "noon"])
    assume(times == ["08:00", "20:00"])
    assume(malformed == ["25:00", "noon"])


def test_medicine_rejects_malformed() -> None:
    """
    Test a medicine configured with a malformed time is rejected.
    """
    with pytest.raises(ValidationError):
        MedicineModel(
            name="Aspirin",
            owner_id="0c1a8a0e-58b3-4b8e-9b8e-5b1f1e1e1e1e",
            times=["08:00", "25:00"],
        )


def test_medicine_lenient() -> None:
    """
    Test a stored medicine with a malformed time keeps its valid times.
    """
    medicine = MedicineModel.model_validate(
        {
            "name": "Aspirin",
            "owner_id": "0c1a8a0e-58b3-4b8e-9b8e-5b1f1e1e1e1e",
            "times": ["20:00", "25:00", "8:00"],
        },
        context=LENIENT_CONTEXT,
    )
    assume(medicine.times == ["08:00", "20:00"])
    assume(medicine.malformed_times == ["25:00"])
    # Malformed times are persisted, and kept on reload
    assume(medicine.model_dump()["malformed_times"] == ["25:00"])
    reloaded = MedicineModel.model_validate_json(
        medicine.model_dump_json(), context=LENIENT_CONTEXT
    )
    assume(reloaded.malformed_times == ["25:00"])
    assume(reloaded.times == ["08:00", "20:00"])


@pytest.mark.parametrize(
    "frequency, times, remaining_doses, dose_size, expected",
    [
        pytest.param(FrequencyEnum.DAILY, ["08:00", "20:00"], 10, 1, 5, id="daily"),
        pytest.param(FrequencyEnum.DAILY, ["08:00"], 3, 0.5, 6, id="half_dose"),
        pytest.param(FrequencyEnum.WEEKLY, ["08:00"], 2, 1, 14, id="weekly"),
        pytest.param(FrequencyEnum.DAILY, [], 10, 1, 0, id="no_times"),
        pytest.param(FrequencyEnum.DAILY, ["08:00"], 0, 1, 0, id="empty"),
    ],
)
def test_days_remaining(
    frequency: FrequencyEnum,
    times: list[str],
    remaining_doses: float,
    dose_size: float,
    expected: int,
) -> None:
    medicine = MedicineModel(
        dose_size=dose_size,
        frequency=frequency,
        name="Aspirin",
        owner_id="0c1a8a0e-58b3-4b8e-9b8e-5b1f1e1e1e1e",
        remaining_doses=remaining_doses,
        times=times,
    )
    assert medicine.days_remaining() == expected
