import re
from typing import Any

from pydantic import GetCoreSchemaHandler
from pydantic_core import core_schema

from adherence.helpers.exceptions import MalformedScheduleEntryError

_PATTERN = re.compile(r"^([01]?[0-9]|2[0-3]):([0-5][0-9])$")


class TimeOfDay(str):
    """
    Wall-clock time of the day, formatted as 24-hour `HH:MM`, without timezone.

    Value is normalized to two digits hours, so "8:05" is stored as "08:05".
    """

    hour: int
    minute: int

    def __new__(cls, value: str) -> "TimeOfDay":
        match = _PATTERN.match(value.strip()) if isinstance(value, str) else None
        if not match:
            raise MalformedScheduleEntryError(str(value))
        hour, minute = int(match.group(1)), int(match.group(2))
        instance = super().__new__(cls, f"{hour:02d}:{minute:02d}")
        instance.hour = hour
        instance.minute = minute
        return instance

    @classmethod
    def __get_pydantic_core_schema__(
        cls,
        source: Any,  # noqa: ARG003
        handler: GetCoreSchemaHandler,  # noqa: ARG003
    ) -> core_schema.CoreSchema:
        return core_schema.no_info_after_validator_function(
            cls,
            core_schema.str_schema(),
            serialization=core_schema.plain_serializer_function_ser_schema(str),
        )

    def matches(self, hour: int, minute: int) -> bool:
        """
        Exact minute equality, there is no tolerance window.
        """
        return self.hour == hour and self.minute == minute


def parse_times(values: list[Any]) -> tuple[list[TimeOfDay], list[str]]:
    """
    Parse a list of raw times, without failing on invalid ones.

    Returns the valid times, sorted and deduplicated, and the raw values which are malformed.
    """
    times: set[TimeOfDay] = set()
    malformed: list[str] = []
    for value in values:
        try:
            times.add(value if isinstance(value, TimeOfDay) else TimeOfDay(value))
        except MalformedScheduleEntryError:
            malformed.append(str(value))
    return sorted(times), malformed
