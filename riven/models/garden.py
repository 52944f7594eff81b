from __future__ import annotations

from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class GardenStage:
    """One tier of the streak garden. `min_days` is an inclusive lower bound."""

    index: int
    min_days: int
    name: str
    description: str
    icon: str = ""

    def to_dict(self) -> dict:
        data = asdict(self)
        data["minDays"] = data.pop("min_days")
        return data
