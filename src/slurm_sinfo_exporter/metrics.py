"""Backend-independent metric schema and sample types.

Collectors advertise a fixed set of MetricDescriptor objects before any data
flows and produce MetricSample objects on each invocation. Conversion to
prometheus_client metric families happens in the collector adapter.
"""

import enum
from dataclasses import dataclass, field


class MetricKind(enum.Enum):
    """Kind of value a metric carries."""

    GAUGE = "gauge"
    COUNTER = "counter"


@dataclass(frozen=True)
class MetricDescriptor:
    """Name, help text, kind and label schema of an emittable metric."""

    name: str
    documentation: str
    kind: MetricKind = MetricKind.GAUGE
    labels: tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricSample:
    """A single value of a metric, with label values keyed by label name."""

    name: str
    value: float
    kind: MetricKind = MetricKind.GAUGE
    labels: dict[str, str] = field(default_factory=dict)

    @classmethod
    def of(
        cls,
        descriptor: MetricDescriptor,
        value: float,
        *label_values: str,
    ) -> "MetricSample":
        """Build a sample for a descriptor from positional label values.

        Raises:
            ValueError: If the number of label values does not match the
                descriptor's label schema.
        """
        if len(label_values) != len(descriptor.labels):
            msg = (
                f"{descriptor.name} expects labels {descriptor.labels}, "
                f"got {len(label_values)} value(s)"
            )
            raise ValueError(msg)
        return cls(
            name=descriptor.name,
            value=value,
            kind=descriptor.kind,
            labels=dict(zip(descriptor.labels, label_values, strict=True)),
        )
