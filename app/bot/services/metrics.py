from __future__ import annotations

"""In-process counters and summaries with Prometheus text exposition."""

from dataclasses import dataclass
from threading import Lock
from typing import Dict, Tuple


LabelKey = Tuple[Tuple[str, str], ...]  # sorted tuple of (k,v)


def _labels_key(labels: Dict[str, str] | None) -> LabelKey:
    return tuple(sorted((labels or {}).items()))


def _render_labels(labels: LabelKey) -> str:
    if not labels:
        return ""
    return "{" + ",".join(f'{k}="{v}"' for k, v in labels) + "}"


@dataclass
class _Summary:
    count: float = 0.0
    sum: float = 0.0


class Metrics:
    def __init__(self) -> None:
        self._counters: Dict[str, Dict[LabelKey, float]] = {}
        self._summaries: Dict[str, Dict[LabelKey, _Summary]] = {}
        self._lock = Lock()

    def inc(self, name: str, *, labels: Dict[str, str] | None = None, value: float = 1.0) -> None:
        with self._lock:
            series = self._counters.setdefault(name, {})
            key = _labels_key(labels)
            series[key] = series.get(key, 0.0) + value

    def observe(self, name: str, value: float, *, labels: Dict[str, str] | None = None) -> None:
        with self._lock:
            summary = self._summaries.setdefault(name, {}).setdefault(_labels_key(labels), _Summary())
            summary.count += 1.0
            summary.sum += float(value)

    def counter_value(self, name: str, *, labels: Dict[str, str] | None = None) -> float:
        with self._lock:
            return self._counters.get(name, {}).get(_labels_key(labels), 0.0)

    def to_prometheus(self) -> str:
        lines: list[str] = []
        with self._lock:
            for name, series in self._counters.items():
                lines.append(f"# TYPE {name} counter")
                lines.extend(f"{name}{_render_labels(labels)} {value}" for labels, value in series.items())
            for name, summaries in self._summaries.items():
                lines.append(f"# TYPE {name} summary")
                for labels, s in summaries.items():
                    rendered = _render_labels(labels)
                    lines.append(f"{name}_count{rendered} {s.count}")
                    lines.append(f"{name}_sum{rendered} {s.sum}")
        return "\n".join(lines) + "\n"


metrics = Metrics()
