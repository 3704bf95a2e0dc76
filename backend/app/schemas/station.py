"""Pydantic schemas for the station catalogue."""

from pydantic import BaseModel


class CriterionOut(BaseModel):
    id: str
    label: str
    outcome: str
    kind: str
    min_exclusive: float | None = None
    max: float | None = None
    unit: str | None = None


class StationOut(BaseModel):
    number: int
    stage: str
    name: str
    description: str
    line: str
    criteria: list[CriterionOut]
