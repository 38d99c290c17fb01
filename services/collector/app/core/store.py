from __future__ import annotations
from collections import Counter, deque
from dataclasses import dataclass, field
import json
from typing import Any, Deque, Optional


class MalformedDatagram(ValueError):
    pass


def decode_datagram(data: bytes) -> Any:
    try:
        return json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedDatagram(str(e)) from e


@dataclass
class CollectorModel:
    max_records: int = 1000
    received_count: int = 0
    malformed_count: int = 0
    reset_count: int = 0
    records: Deque[Any] = field(init=False)

    def __post_init__(self) -> None:
        self.records = deque(maxlen=self.max_records)

    def ingest(self, data: bytes) -> Any:
        try:
            record = decode_datagram(data)
        except MalformedDatagram:
            self.malformed_count += 1
            raise
        self.received_count += 1
        self.records.append(record)
        return record

    def reset(self) -> None:
        self.records.clear()
        self.received_count = 0
        self.malformed_count = 0
        self.reset_count += 1

    def recent(self, limit: int) -> list:
        if limit <= 0:
            return []
        return list(self.records)[-limit:]

    def stats(self) -> dict:
        # only default-shaped payloads contribute to timing figures
        times = []
        statuses: Counter = Counter()
        for r in self.records:
            if not isinstance(r, dict):
                continue
            rt = r.get("response_time")
            if isinstance(rt, (int, float)) and not isinstance(rt, bool):
                times.append(rt)
            if "response_status" in r:
                statuses[str(r["response_status"])] += 1

        mean: Optional[float] = sum(times) / len(times) if times else None
        return {
            "received": self.received_count,
            "malformed": self.malformed_count,
            "stored": len(self.records),
            "mean_response_time": mean,
            "max_response_time": max(times) if times else None,
            "status_counts": dict(statuses),
        }
