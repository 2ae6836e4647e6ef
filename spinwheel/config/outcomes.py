"""
SPINWHEEL — Outcome Schema & Built-in Defaults

Typed models for outcome definitions and spin records, plus the reference
outcome set the wheel ships with. Persisted JSON keeps camelCase field names
(`maxLimit`, `outcomeId`), so every model dumps with aliases.

Usage:
    from spinwheel.config.outcomes import OUTCOME_CONFIGS, OutcomeDefinition
    cfg = OUTCOME_CONFIGS["200"].model_copy(update={"probability": 0.9})
    json_obj = cfg.model_dump(by_alias=True)
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ═══════════════════════════════════════════════════════════════
# Models
# ═══════════════════════════════════════════════════════════════

class OutcomeDefinition(BaseModel):
    """One possible spin result with its weight and lifetime cap."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    label: str
    color: str
    probability: float = Field(ge=0, allow_inf_nan=False)  # relative weight, not normalized
    max_limit: int = Field(ge=0, alias="maxLimit")  # lifetime occurrence cap

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


class SpinRecord(BaseModel):
    """A completed spin. Immutable once created."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    timestamp: int                                  # epoch millis
    outcome_id: str = Field(alias="outcomeId")

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True)


class WheelSlice(BaseModel):
    """A physical slice of the rendered wheel."""
    label: str
    outcome_id: str
    color: str


# ═══════════════════════════════════════════════════════════════
# Built-in defaults
# ═══════════════════════════════════════════════════════════════

OUTCOME_CONFIGS: dict[str, OutcomeDefinition] = {
    "200": OutcomeDefinition(
        id="200", label="200 OK", color="#0F2854",
        probability=0.40, max_limit=50,
    ),
    "301": OutcomeDefinition(
        id="301", label="301 Go to Counter", color="#1C4D8D",
        probability=0.25, max_limit=25,
    ),
    "302": OutcomeDefinition(
        id="302", label="302 Go to Another Place", color="#4988C4",
        probability=0.25, max_limit=25,
    ),
    "404": OutcomeDefinition(
        id="404", label="404 Better Luck Next Time", color="#BDE8F5",
        probability=0.10, max_limit=20,
    ),
}

DEFAULT_OUTCOME_IDS: tuple[str, ...] = tuple(OUTCOME_CONFIGS)

# Visual layout order matters: renderers index slices clockwise from the top.
WHEEL_SLICES: list[WheelSlice] = [
    WheelSlice(label=oid, outcome_id=oid, color=OUTCOME_CONFIGS[oid].color)
    for oid in ("200", "404", "301", "200", "404", "302")
]


def slices_for(outcome_id: str) -> list[int]:
    """Indices of the wheel slices that display `outcome_id`."""
    return [i for i, s in enumerate(WHEEL_SLICES) if s.outcome_id == outcome_id]


def config_to_json(config: dict[str, OutcomeDefinition]) -> dict:
    return {oid: cfg.to_json() for oid, cfg in config.items()}
