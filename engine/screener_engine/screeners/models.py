"""
Screener model data models.

Defines contracts for screener models (persisted pipelines), their steps,
and the results of executing them.
"""

from datetime import UTC, date, datetime
from typing import Any, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def _now() -> datetime:
    return datetime.now(UTC)


def _new_model_id() -> str:
    return str(uuid4())


# =============================================================================
# Configuration Models
# =============================================================================


class ScreenerStep(BaseModel):
    """One screener invocation inside a model."""

    model_config = ConfigDict(frozen=True)

    screener_id: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("screener_id", "screenerID", "screenerId"),
        description="Registered screener id",
    )
    parameters: dict[str, Any] = Field(
        default_factory=dict, description="Overrides for the screener's defaults"
    )


class ScreenerModel(BaseModel):
    """
    A named, ordered pipeline of screeners.

    Immutable: edits produce a new instance via model_copy, so a running
    backtest always works on a snapshot.
    """

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str = Field(
        default_factory=_new_model_id,
        validation_alias=AliasChoices("model_id", "modelID", "modelId"),
        description="UUID string",
    )
    display_name: str = Field(
        ..., min_length=1, validation_alias=AliasChoices("display_name", "displayName")
    )
    description: str = ""
    steps: list[ScreenerStep] = Field(default_factory=list)
    schedule: Literal["manual", "daily_eod", "intraday"] = "manual"
    is_enabled: bool = Field(
        default=True, validation_alias=AliasChoices("is_enabled", "isEnabled")
    )
    created_at: datetime = Field(default_factory=_now)
    modified_at: datetime = Field(default_factory=_now)

    @property
    def step_count(self) -> int:
        return len(self.steps)

    @property
    def screener_ids(self) -> list[str]:
        return [step.screener_id for step in self.steps]

    def touched(self) -> "ScreenerModel":
        """Copy with modified_at set to now."""
        return self.model_copy(update={"modified_at": _now()})


# =============================================================================
# Result Models
# =============================================================================


class ScreenedSymbol(BaseModel):
    """A symbol that survived a model, with data from its last bar."""

    model_config = ConfigDict(frozen=True)

    symbol: str
    added_at_step: int = Field(..., ge=0, description="Index of the step that admitted it")
    is_selected: bool = True
    metadata: dict[str, Any] = Field(default_factory=dict)

    def metadata_value(self, key: str, default: Any = None) -> Any:
        return self.metadata.get(key, default)

    def has_metadata(self, key: str) -> bool:
        return key in self.metadata


class StepResult(BaseModel):
    """Intermediate output of one pipeline step."""

    model_config = ConfigDict(frozen=True)

    step_index: int = Field(..., ge=0)
    screener_id: str
    screener_name: str
    input_count: int = Field(..., ge=0)
    symbols: list[str] = Field(default_factory=list)
    execution_time: float = Field(default=0.0, ge=0, description="Seconds")

    @property
    def output_count(self) -> int:
        return len(self.symbols)

    @property
    def rejected_count(self) -> int:
        return self.input_count - len(self.symbols)


class ModelResult(BaseModel):
    """Final output of one model execution."""

    model_config = ConfigDict(frozen=True, protected_namespaces=())

    model_id: str
    model_name: str
    executed_at: datetime = Field(default_factory=_now)
    as_of: date | None = Field(default=None, description="Last date visible in the cache")
    initial_universe_size: int = Field(default=0, ge=0)
    step_results: list[StepResult] = Field(default_factory=list)
    screened_symbols: list[ScreenedSymbol] = Field(default_factory=list)
    total_execution_time: float = Field(default=0.0, ge=0, description="Seconds")

    @property
    def final_symbols(self) -> list[str]:
        return [s.symbol for s in self.screened_symbols]

    @property
    def symbol_count(self) -> int:
        return len(self.screened_symbols)
