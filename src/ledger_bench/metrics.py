import statistics
import sys
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .errors import ErrorKind
from .transfer import TransferResult


@dataclass
class TransferMetrics:
    """Metrics for a single transfer."""

    start_time: float
    end_time: float
    kind: ErrorKind
    error_message: str = ""

    @property
    def latency(self) -> float:
        """Transfer latency in seconds."""
        return self.end_time - self.start_time

    @property
    def success(self) -> bool:
        return self.kind == ErrorKind.OK


@dataclass
class MetricsCollector:
    """Collector for transfer metrics. Safe for use with asyncio (single-threaded)."""

    transfers: List[TransferMetrics] = field(default_factory=list)
    _start_time: Optional[float] = None

    def record(self, result: TransferResult, end_time: Optional[float] = None) -> None:
        """
        Record the outcome of a transfer.

        Args:
            result: Result returned by the transfer executor
            end_time: Wall clock time the transfer returned (default: now)
        """
        if end_time is None:
            end_time = time.time()
        start_time = end_time - result.elapsed
        if self._start_time is None or start_time < self._start_time:
            self._start_time = start_time
        self.transfers.append(
            TransferMetrics(
                start_time=start_time,
                end_time=end_time,
                kind=result.kind,
                error_message="" if result.error is None else str(result.error),
            )
        )

    def _calculate_percentiles(self, values: List[float]) -> Dict[str, float]:
        """Calculate percentiles for a list of values."""
        if not values:
            return {
                "avg": 0.0,
                "stddev": 0.0,
                "min": 0.0,
                "max": 0.0,
                "p50": 0.0,
                "p95": 0.0,
                "p99": 0.0,
            }

        sorted_values = sorted(values)
        avg = sum(sorted_values) / len(sorted_values)
        stddev = statistics.stdev(sorted_values) if len(sorted_values) > 1 else 0.0

        def _percentile(q: float) -> float:
            index = int(len(sorted_values) * q)
            return sorted_values[index] if index < len(sorted_values) else sorted_values[-1]

        return {
            "avg": avg,
            "stddev": stddev,
            "min": sorted_values[0],
            "max": sorted_values[-1],
            "p50": _percentile(0.50),
            "p95": _percentile(0.95),
            "p99": _percentile(0.99),
        }

    def get_summary(self) -> Dict[str, Any]:
        """
        Calculate and return summary statistics.

        Returns:
            Dictionary containing metrics summary
        """
        total_transfers = len(self.transfers)
        if not total_transfers:
            return {
                "total_duration": 0.0,
                "total_transfers": 0,
                "successful_transfers": 0,
                "timed_out_transfers": 0,
                "failed_transfers": 0,
                "tps": 0.0,
                "latency": self._calculate_percentiles([]),
            }

        total_duration = max(t.end_time for t in self.transfers) - self._start_time
        successful = sum(1 for t in self.transfers if t.kind == ErrorKind.OK)
        timed_out = sum(1 for t in self.transfers if t.kind == ErrorKind.TIMEOUT)

        latencies_ms = [t.latency * 1000 for t in self.transfers]

        return {
            "total_duration": total_duration,
            "total_transfers": total_transfers,
            "successful_transfers": successful,
            "timed_out_transfers": timed_out,
            "failed_transfers": total_transfers - successful - timed_out,
            "tps": total_transfers / total_duration if total_duration > 0 else 0.0,
            "latency": self._calculate_percentiles(latencies_ms),
        }

    def print_summary(self) -> None:
        """Print formatted metrics summary to stdout (not as log)."""
        summary = self.get_summary()
        lat = summary["latency"]

        print("=" * 60, file=sys.stdout)
        print("TRANSFER METRICS", file=sys.stdout)
        print("=" * 60, file=sys.stdout)
        print(f"Total Duration:           {summary['total_duration']:.2f} seconds", file=sys.stdout)
        print(f"Total Transfers:          {summary['total_transfers']}", file=sys.stdout)
        print(f"Successful Transfers:     {summary['successful_transfers']}", file=sys.stdout)
        print(f"Timed Out Transfers:      {summary['timed_out_transfers']}", file=sys.stdout)
        print(f"Failed Transfers:         {summary['failed_transfers']}", file=sys.stdout)
        print(f"Transfers per Second:     {summary['tps']:.2f} TPS", file=sys.stdout)
        print("=" * 60, file=sys.stdout)
        print(f"{'Metric':<15} {'Client duration (ms)':>20}", file=sys.stdout)
        print("-" * 60, file=sys.stdout)
        print(f"{'Average':<15} {lat['avg']:>20.2f}", file=sys.stdout)
        print(f"{'STDDev':<15} {lat['stddev']:>20.2f}", file=sys.stdout)
        print(f"{'Minimum':<15} {lat['min']:>20.2f}", file=sys.stdout)
        print(f"{'Maximum':<15} {lat['max']:>20.2f}", file=sys.stdout)
        print(f"{'P50 (Median)':<15} {lat['p50']:>20.2f}", file=sys.stdout)
        print(f"{'P95':<15} {lat['p95']:>20.2f}", file=sys.stdout)
        print(f"{'P99':<15} {lat['p99']:>20.2f}", file=sys.stdout)
        print("=" * 60, file=sys.stdout)
        sys.stdout.flush()
