"""重复任务引擎 -- 将 master 展开为具体的 occurrence"""

from .calculator import next_due_at, recurrence_config_error
from .cloner import clone_for_occurrence
from .engine import FailureKind, MasterFailure, RecurrenceEngine, RunSummary
from .generator import GenerationResult, StopReason, generate_occurrences
from .scanner import build_master_filter, scan_masters

__all__ = [
    "next_due_at",
    "recurrence_config_error",
    "clone_for_occurrence",
    "generate_occurrences",
    "GenerationResult",
    "StopReason",
    "scan_masters",
    "build_master_filter",
    "RecurrenceEngine",
    "RunSummary",
    "MasterFailure",
    "FailureKind",
]
