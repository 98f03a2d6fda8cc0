"""
Models for the Fitbit sleep log API response.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field


class _FitbitModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class SleepMinute(_FitbitModel):
    date_time: str = Field(..., alias="dateTime")
    value: str


class SleepLog(_FitbitModel):
    """A single sleep period."""

    log_id: int = Field(0, alias="logId")
    date_of_sleep: str = Field("", alias="dateOfSleep")
    start_time: str = Field("", alias="startTime")
    is_main_sleep: bool = Field(False, alias="isMainSleep")
    duration: int = 0
    efficiency: int = 0
    awake_count: int = Field(0, alias="awakeCount")
    awake_duration: int = Field(0, alias="awakeDuration")
    awakenings_count: int = Field(0, alias="awakeningsCount")
    minutes_after_wakeup: int = Field(0, alias="minutesAfterWakeup")
    minutes_asleep: int = Field(0, alias="minutesAsleep")
    minutes_awake: int = Field(0, alias="minutesAwake")
    minutes_to_fall_asleep: int = Field(0, alias="minutesToFallAsleep")
    restless_count: int = Field(0, alias="restlessCount")
    restless_duration: int = Field(0, alias="restlessDuration")
    time_in_bed: int = Field(0, alias="timeInBed")
    minute_data: List[SleepMinute] = Field(default_factory=list, alias="minuteData")


class SleepSummary(_FitbitModel):
    total_minutes_asleep: int = Field(0, alias="totalMinutesAsleep")
    total_sleep_records: int = Field(0, alias="totalSleepRecords")
    total_time_in_bed: int = Field(0, alias="totalTimeInBed")


class SleepResponse(_FitbitModel):
    """Body of ``GET /1/user/-/sleep/date/{date}.json``."""

    sleep: List[SleepLog] = Field(default_factory=list)
    summary: SleepSummary = Field(default_factory=SleepSummary)

    @property
    def main_sleep(self) -> SleepLog | None:
        for entry in self.sleep:
            if entry.is_main_sleep:
                return entry
        return self.sleep[0] if self.sleep else None


__all__ = ["SleepLog", "SleepMinute", "SleepResponse", "SleepSummary"]
