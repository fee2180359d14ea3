"""
Dashboard schemas.

Upstream records (`StudentRecord`, `DriveRecord`) are validated from the raw
upstream JSON; response models are what the dashboard endpoints return.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class StudentRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str
    grade: str = Field(..., alias="class")
    vaccination_records: list[Any] = Field(default_factory=list, alias="vaccinationRecords")

    @field_validator("grade", mode="before")
    @classmethod
    def _grade_to_str(cls, value: Any) -> Any:
        # Upstreams send grades as "5A", 5 or 5.0; 5 and 5.0 share one bucket.
        if isinstance(value, bool):
            return value
        if isinstance(value, float) and value.is_integer():
            return str(int(value))
        if isinstance(value, (int, float)):
            return str(value)
        return value

    @field_validator("vaccination_records", mode="before")
    @classmethod
    def _non_list_records_to_empty(cls, value: Any) -> Any:
        # Anything but a list means no records on file.
        return value if isinstance(value, list) else []

    @property
    def vaccinated(self) -> bool:
        return len(self.vaccination_records) > 0


class DriveRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int | str
    vaccine_name: Any = Field(default=None, alias="vaccineName")
    date: Any = None
    grades: Any = None
    # The drive service spells this field "avilableDoses".
    available_doses: Any = Field(
        default=None,
        validation_alias=AliasChoices("avilableDoses", "availableDoses", "available_doses"),
    )
    is_expired: bool = Field(default=False, alias="isExpired")

    @field_validator("is_expired", mode="before")
    @classmethod
    def _expired_truthiness(cls, value: Any) -> bool:
        # Missing/null is active; other values follow plain truthiness.
        return bool(value)

    def scheduled_at(self) -> datetime | None:
        """
        Parsed drive date as an aware datetime, or None when absent/unparsable.

        Naive timestamps and bare dates are treated as UTC.
        """
        if isinstance(self.date, str) and self.date.strip():
            raw = self.date.strip()
            if raw.endswith(("Z", "z")):
                raw = raw[:-1] + "+00:00"
            try:
                parsed = datetime.fromisoformat(raw)
            except ValueError:
                return None
        else:
            return None

        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed


class UpcomingDrive(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: int | str
    vaccine_name: Any = Field(default=None, alias="vaccineName")
    date: Any = None
    grades: Any = None
    available_doses: Any = Field(default=None, alias="availableDoses")


class OverviewResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_students: int = Field(..., alias="totalStudents")
    vaccination_percentage: str = Field(..., alias="vaccinationPercentage")
    upcoming_drives: int = Field(..., alias="upcomingDrives")
    upcoming_drives_list: list[UpcomingDrive] = Field(default_factory=list, alias="upcomingDrivesList")


class GradeBreakdown(BaseModel):
    total: int
    vaccinated: int
    percentage: str | int


class StatsResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    total_drives: int = Field(..., alias="totalDrives")
    completed_drives: int = Field(..., alias="completedDrives")
    active_drives: int = Field(..., alias="activeDrives")
    average_students_per_drive: str | int = Field(..., alias="averageStudentsPerDrive")
    student_participation_rate: str | int = Field(..., alias="studentParticipationRate")
    vaccination_by_grade: dict[str, GradeBreakdown] = Field(
        default_factory=dict,
        alias="vaccinationByGrade",
    )


class ErrorResponse(BaseModel):
    error: str
    details: str | None = None
