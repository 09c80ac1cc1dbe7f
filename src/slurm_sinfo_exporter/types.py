"""Payload types for the ``sinfo --json`` node inventory.

Pydantic models describing the JSON document produced by the node data
source. Values are taken as reported: numeric fields that are absent decode
as zero and no unit conversion is applied.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


class NodeRecord(BaseModel):
    """A single cluster node as reported at scrape time."""

    model_config = ConfigDict(frozen=True)

    hostname: str = ""

    # CPU information
    cpus: float = 0.0
    alloc_cpus: float = 0.0
    idle_cpus: float = 0.0
    cpu_load: float = 0.0

    # Memory information
    real_memory: float = 0.0
    free_memory: float = 0.0
    alloc_memory: float = 0.0

    # Scheduling
    partitions: tuple[str, ...] = ()
    state: str = ""
    weight: float = 0.0
    architecture: str = ""

    @field_validator("*", mode="before")
    @classmethod
    def _null_as_default(cls, value: Any, info: ValidationInfo) -> Any:
        # null leaves the zero value, as for an absent field
        if value is None:
            return cls.model_fields[info.field_name].default
        return value


class SinfoResponse(BaseModel):
    """Top-level node inventory document."""

    meta: dict[str, Any] = Field(default_factory=dict)
    errors: list[str] = Field(default_factory=list)
    nodes: list[NodeRecord] = Field(default_factory=list)

    @field_validator("meta", "nodes", mode="before")
    @classmethod
    def _null_collections(cls, value: Any, info: ValidationInfo) -> Any:
        if value is None:
            return {} if info.field_name == "meta" else []
        return value

    @field_validator("errors", mode="before")
    @classmethod
    def _error_messages(cls, value: Any) -> Any:
        # slurmrestd reports errors as objects carrying an "error" message
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        return [
            error.get("error", str(error)) if isinstance(error, dict) else error
            for error in value
        ]
