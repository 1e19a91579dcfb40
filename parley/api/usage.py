"""Per-model request and token accounting.

Feeds on every request made through MessagesClient: one started record,
then either a completed record (with the response usage) or a failed one.
In-memory only; call reset() to start over.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field

from parley.models.response import Usage


@dataclass
class ModelUsage:
    """Aggregated counters for one model."""

    requests: int = 0
    completed: int = 0
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@dataclass(frozen=True)
class UsageSummary:
    """Point-in-time copy of the tracker's counters."""

    models: dict[str, ModelUsage] = field(default_factory=dict)
    errors: dict[str, int] = field(default_factory=dict)  # "model:ErrorClass" -> count

    @property
    def total_requests(self) -> int:
        return sum(m.requests for m in self.models.values())

    @property
    def total_input_tokens(self) -> int:
        return sum(m.input_tokens for m in self.models.values())

    @property
    def total_output_tokens(self) -> int:
        return sum(m.output_tokens for m in self.models.values())

    @property
    def total_tokens(self) -> int:
        return self.total_input_tokens + self.total_output_tokens

    @property
    def total_errors(self) -> int:
        return sum(self.errors.values())


class UsageTracker:
    """Thread-safe counters shared by any number of clients."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._models: dict[str, ModelUsage] = {}
        self._errors: dict[str, int] = {}

    def record_started(self, model: str) -> None:
        with self._lock:
            self._models.setdefault(model, ModelUsage()).requests += 1

    def record_completed(self, model: str, usage: Usage) -> None:
        with self._lock:
            stats = self._models.setdefault(model, ModelUsage())
            stats.completed += 1
            stats.input_tokens += usage.input_tokens
            stats.output_tokens += usage.output_tokens

    def record_failed(self, model: str, error: BaseException) -> None:
        key = f"{model}:{type(error).__name__}"
        with self._lock:
            self._errors[key] = self._errors.get(key, 0) + 1

    def snapshot(self) -> UsageSummary:
        with self._lock:
            return UsageSummary(
                models={
                    name: ModelUsage(s.requests, s.completed, s.input_tokens, s.output_tokens)
                    for name, s in self._models.items()
                },
                errors=dict(self._errors),
            )

    def reset(self) -> None:
        with self._lock:
            self._models.clear()
            self._errors.clear()

    def summary(self) -> str:
        """Human-readable report, busiest models first."""
        snap = self.snapshot()
        lines = [
            "Usage summary",
            f"Total requests: {snap.total_requests}",
            f"Total tokens: {snap.total_tokens} "
            f"(input: {snap.total_input_tokens}, output: {snap.total_output_tokens})",
        ]
        if snap.total_errors:
            lines.append(f"Total errors: {snap.total_errors}")
        if snap.models:
            lines.append("")
            lines.append("By model:")
            ranked = sorted(snap.models.items(), key=lambda kv: kv[1].total_tokens, reverse=True)
            for name, stats in ranked:
                lines.append(
                    f"  {name}: {stats.requests} requests, {stats.total_tokens} tokens "
                    f"({stats.input_tokens} in, {stats.output_tokens} out)"
                )
        return "\n".join(lines)
