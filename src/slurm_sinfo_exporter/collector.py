"""Prometheus collector implementation using composition pattern.

Provides a reusable collector that separates concerns between data fetching
and caching, payload parsing, and metric generation through dependency
injection. The collector exposes a backend-independent schema()/sample()
pair and adapts it to prometheus_client's describe()/collect() protocol.
"""

from collections.abc import Callable, Iterable, Iterator, Sequence
from threading import Lock
from typing import Generic, TypeAlias, TypeVar

import structlog
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric
from prometheus_client.registry import Collector

from .cache import AtomicThrottledCache
from .errors import CollectionError, FetchFailure
from .metrics import MetricDescriptor, MetricKind, MetricSample

logger = structlog.get_logger(__name__)

T = TypeVar("T")


Parser: TypeAlias = Callable[[bytes], list[T]]
SamplesGenerator: TypeAlias = Callable[[list[T]], Iterable[MetricSample]]


class SlurmCollector(Collector, Generic[T]):
    """Prometheus collector for SLURM metrics using composition pattern.

    Separates concerns through dependency injection:
    - Raw data retrieval (via a shared AtomicThrottledCache wrapping a fetcher)
    - Decoding into records (via Parser function)
    - Sample generation (via SamplesGenerator function)

    Every cycle is independent: a failure at any stage increments the error
    counter and ends the cycle, and the next cycle starts fresh. The error
    counter is the only state kept across cycles.
    """

    def __init__(
        self,
        cache: AtomicThrottledCache,
        parser: Parser[T],
        generator: SamplesGenerator[T],
        descriptors: Sequence[MetricDescriptor],
        metric_prefix: str,
    ):
        """Initialize the SLURM collector.

        Args:
            cache: Throttled cache wrapping the fetcher, shared with any
                other component that reads the same data source.
            parser: Function decoding the raw payload into records.
            generator: Function producing samples from decoded records.
            descriptors: Every metric the generator may produce.
            metric_prefix: Metric name prefix for the error counter
                (e.g., "node").
        """
        self._cache = cache
        self._parser = parser
        self._generator = generator
        self._metric_prefix = metric_prefix

        self._error_counter = MetricDescriptor(
            f"slurm_{metric_prefix}_scrape_error",
            f"slurm {metric_prefix} info scrape errors",
            kind=MetricKind.COUNTER,
        )
        self._descriptors = (*descriptors, self._error_counter)

        # Track errors manually (no global Counter registration)
        self._error_count = 0
        self._error_lock = Lock()

    @property
    def error_count(self) -> int:
        """Number of failed collection cycles so far."""
        with self._error_lock:
            return self._error_count

    def _record_error(self) -> None:
        with self._error_lock:
            self._error_count += 1

    def schema(self) -> tuple[MetricDescriptor, ...]:
        """Return every metric this collector may emit, error counter last."""
        return self._descriptors

    def load(self) -> list[T]:
        """Fetch (or reuse) the raw payload and decode it.

        Raises:
            CollectionError: If fetching or parsing fails.
        """
        raw, fetch_duration = self._cache.get()
        if fetch_duration is not None:
            logger.debug(
                "Fetched fresh payload",
                metric_prefix=self._metric_prefix,
                duration_seconds=round(fetch_duration, 3),
                size_bytes=len(raw),
            )
        return self._parser(raw)

    def sample(self) -> list[MetricSample]:
        """Run one collection cycle.

        Returns:
            Domain samples followed by the error counter sample. When the
            cycle fails only the error counter sample is returned.
        """
        samples: list[MetricSample] = []
        try:
            records = self.load()
        except FetchFailure as exc:
            self._record_error()
            logger.error(
                "Failed to fetch metrics for collection",
                metric_prefix=self._metric_prefix,
                error=str(exc),
            )
        except CollectionError as exc:
            self._record_error()
            logger.error(
                "Failed to parse metrics for collection",
                metric_prefix=self._metric_prefix,
                error=str(exc),
            )
        else:
            samples.extend(self._generator(records))

        samples.append(MetricSample.of(self._error_counter, self.error_count))
        return samples

    def describe(self) -> Iterator[Metric]:
        """Advertise metric families without collecting.

        Registering a collector that implements describe() does not trigger
        a fetch against the data source.
        """
        for descriptor in self._descriptors:
            yield _family(descriptor)

    def collect(self) -> Iterator[Metric]:
        """Collect metrics for Prometheus scrape.

        Called by Prometheus client during each scrape. Groups the samples of
        one cycle into metric families; families without samples are not
        yielded.

        Yields:
            Prometheus Metric objects.
        """
        by_name = {descriptor.name: descriptor for descriptor in self._descriptors}
        families: dict[str, Metric] = {}

        for sample in self.sample():
            descriptor = by_name[sample.name]
            family = families.get(sample.name)
            if family is None:
                family = families[sample.name] = _family(descriptor)
            family.add_metric(
                [sample.labels[label] for label in descriptor.labels],
                sample.value,
            )

        yield from families.values()


def _family(descriptor: MetricDescriptor) -> GaugeMetricFamily | CounterMetricFamily:
    # prometheus_client exposes counter samples with a "_total" suffix, so the
    # error counter is scraped as slurm_<prefix>_scrape_error_total
    if descriptor.kind is MetricKind.COUNTER:
        return CounterMetricFamily(
            descriptor.name,
            descriptor.documentation,
            labels=list(descriptor.labels),
        )
    return GaugeMetricFamily(
        descriptor.name,
        descriptor.documentation,
        labels=list(descriptor.labels),
    )
