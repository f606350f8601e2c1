"""Per-request traces of the dialogue loop, with token and cost estimates."""

from __future__ import annotations

import re
import threading
import time
import uuid
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from legal_agent.types import ToolTrace

_TOKEN_PATTERN = re.compile(r"\w+|[^\w\s]", flags=re.UNICODE)


@dataclass(slots=True)
class TraceRecord:
    trace_id: str
    timestamp_utc: str
    uid: str
    conversation_id: str
    question: str
    answer: str
    iterations: int
    tool_traces: list[ToolTrace]
    input_tokens: int
    output_tokens: int
    estimated_cost_usd: float
    latency_ms: float
    answered: bool = True


@dataclass(slots=True)
class CostModel:
    """Simple token pricing model (USD per 1K tokens)."""

    input_per_1k: float = 0.00015
    output_per_1k: float = 0.0006

    def estimate_cost(self, input_tokens: int, output_tokens: int) -> float:
        return (input_tokens / 1000.0) * self.input_per_1k + (
            output_tokens / 1000.0
        ) * self.output_per_1k


class TraceStore:
    """Bounded in-memory trace log; oldest records are evicted first."""

    def __init__(self, *, cost_model: CostModel | None = None, max_records: int = 1000) -> None:
        self._records: dict[str, TraceRecord] = {}
        self._cost_model = cost_model or CostModel()
        self._max_records = max_records
        self._lock = threading.Lock()

    def create_record(
        self,
        *,
        uid: str,
        conversation_id: str,
        question: str,
        answer: str,
        iterations: int,
        tool_traces: list[ToolTrace],
        input_tokens: int,
        output_tokens: int,
        latency_ms: float,
        answered: bool = True,
    ) -> TraceRecord:
        record = TraceRecord(
            trace_id=str(uuid.uuid4()),
            timestamp_utc=datetime.now(timezone.utc).isoformat(),
            uid=uid,
            conversation_id=conversation_id,
            question=question,
            answer=answer,
            iterations=iterations,
            tool_traces=tool_traces,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
            estimated_cost_usd=self._cost_model.estimate_cost(input_tokens, output_tokens),
            latency_ms=latency_ms,
            answered=answered,
        )
        with self._lock:
            self._records[record.trace_id] = record
            while len(self._records) > self._max_records:
                oldest = next(iter(self._records))
                del self._records[oldest]
        return record

    def get(self, trace_id: str) -> TraceRecord:
        record = self._records.get(trace_id)
        if record is None:
            raise KeyError(f"Trace not found: {trace_id}")
        return record

    def list_recent(
        self, limit: int = 20, *, conversation_id: str | None = None
    ) -> list[TraceRecord]:
        if limit <= 0:
            return []
        with self._lock:
            records = list(self._records.values())
        if conversation_id is not None:
            records = [r for r in records if r.conversation_id == conversation_id]
        return records[-limit:]

    def summary(self) -> dict[str, Any]:
        """Aggregate latency, loop depth, tool usage and token spend."""
        with self._lock:
            records = list(self._records.values())
        total = len(records)
        if total == 0:
            return {
                "total_requests": 0,
                "avg_latency_ms": 0.0,
                "p95_latency_ms": 0.0,
                "avg_iterations": 0.0,
                "total_tool_calls": 0,
                "tool_calls_by_name": {},
                "unanswered_requests": 0,
                "total_input_tokens": 0,
                "total_output_tokens": 0,
                "total_estimated_cost_usd": 0.0,
            }

        latencies = sorted(record.latency_ms for record in records)
        p95_index = max(0, int((len(latencies) * 0.95) - 1))
        tool_counts = Counter(trace.name for record in records for trace in record.tool_traces)

        return {
            "total_requests": total,
            "avg_latency_ms": sum(latencies) / total,
            "p95_latency_ms": latencies[p95_index],
            "avg_iterations": sum(record.iterations for record in records) / total,
            "total_tool_calls": sum(len(record.tool_traces) for record in records),
            "tool_calls_by_name": dict(tool_counts),
            "unanswered_requests": sum(1 for record in records if not record.answered),
            "total_input_tokens": sum(record.input_tokens for record in records),
            "total_output_tokens": sum(record.output_tokens for record in records),
            "total_estimated_cost_usd": sum(record.estimated_cost_usd for record in records),
        }


class Timer:
    """Wall-clock timer around one dialogue loop."""

    def __init__(self) -> None:
        self._start = 0.0
        self.elapsed_ms = 0.0

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, exc_type: object, exc: object, tb: object) -> None:
        self.elapsed_ms = (time.perf_counter() - self._start) * 1000.0


def estimate_token_count(text: str) -> int:
    return len(_TOKEN_PATTERN.findall(text))
