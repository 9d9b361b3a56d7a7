from dataclasses import dataclass
from typing import Optional


@dataclass
class Metadata:
    trace_file: str
    cpus: Optional[int]
    first_timestamp: Optional[float]
    last_timestamp: Optional[float]
    total_records: int
    lost_events: int
    has_missed_events: bool

    @property
    def duration(self) -> Optional[float]:
        if self.first_timestamp is None or self.last_timestamp is None:
            return None
        return self.last_timestamp - self.first_timestamp
