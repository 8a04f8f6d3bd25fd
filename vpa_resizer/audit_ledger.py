"""
Audit Ledger
Append-only CSV record of every per-pod decision

Rows are written by worker threads of the same batch, so each append holds
a lock for exactly one row. The ledger is the source of truth for what was
changed in a run; the run log is for humans.

The Status column holds No_Change, Dry_Run, Success or Failed, plus Skipped
for a pod that could not be read again at apply time or lacks the
container. A Failed row whose message starts with "Timed out" was never
patched.
"""

import csv
import logging
import os
import re
import threading
from typing import Dict, List, Optional, TextIO

from vpa_resizer.models import ApplyStatus, AuditRecord, BoundKind

logger = logging.getLogger(__name__)

_LINE_BREAKS = re.compile(r"[\r\n]")


def ledger_header(kind: BoundKind) -> List[str]:
    """Column names; upper-bound mode adds observed-usage columns"""
    header = [
        "Timestamp", "Namespace", "VPA_Name", "Target_Kind", "Target_Name",
        "Pod_Name", "Container_Name", "Current_CPU_Request", "Current_Memory_Request",
    ]
    if kind == BoundKind.UPPER_BOUND:
        header += ["Actual_CPU_Usage", "Actual_Memory_Usage"]
    header += [
        f"{kind.label}_CPU", f"{kind.label}_Memory", f"{kind.label}_Memory_K8s",
        "Status", "Error_Message",
    ]
    return header


def flatten_field(value) -> str:
    """Line breaks become spaces; quoting is left to the csv writer"""
    if value is None:
        return ""
    return _LINE_BREAKS.sub(" ", str(value))


class AuditLedger:
    """Thread-safe append-only CSV ledger"""

    def __init__(self, path: Optional[str], kind: BoundKind, stream: Optional[TextIO] = None):
        if path is None and stream is None:
            raise ValueError("AuditLedger needs a path or a stream")

        self.path = path
        self.kind = kind
        self._lock = threading.Lock()
        self._counts: Dict[ApplyStatus, int] = {status: 0 for status in ApplyStatus}
        self._owns_stream = stream is None

        if stream is None:
            write_header = not os.path.exists(path) or os.path.getsize(path) == 0
            stream = open(path, "a", newline="", encoding="utf-8")
        else:
            write_header = True

        self._stream = stream
        self._writer = csv.writer(stream, lineterminator="\n")

        if write_header:
            self._writer.writerow(ledger_header(kind))
            self._stream.flush()

    def row(self, record: AuditRecord) -> List[str]:
        fields = [
            record.timestamp, record.namespace, record.source_name,
            record.target_kind, record.target_name, record.pod_name,
            record.container_name, record.current_cpu, record.current_memory,
        ]
        if self.kind == BoundKind.UPPER_BOUND:
            fields += [record.actual_cpu, record.actual_memory]
        fields += [
            record.recommended_cpu, record.recommended_memory,
            record.recommended_memory_display, record.status.value, record.message,
        ]
        return [flatten_field(f) for f in fields]

    def append(self, record: AuditRecord):
        row = self.row(record)
        with self._lock:
            self._writer.writerow(row)
            self._stream.flush()
            self._counts[record.status] += 1

    def counts(self) -> Dict[ApplyStatus, int]:
        with self._lock:
            return dict(self._counts)

    def close(self):
        with self._lock:
            if self._owns_stream and not self._stream.closed:
                self._stream.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False
