"""
Run result value objects for match sync and score processing.

These are returned to the caller (cron endpoint, scheduler job, CLI) and are
never persisted. A run with a non-empty errors list can still be a success:
the caller decides how to alert on partial failures.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class RunError:
    """A single error entry: what failed (key) and why (message)"""

    key: str
    message: str

    def to_dict(self):
        return {"key": self.key, "message": self.message}

    def __str__(self):
        return f"{self.key}: {self.message}"


@dataclass
class SyncResult:
    new_matches: int = 0
    updated_matches: int = 0
    total_matches: int = 0
    failed: bool = False
    errors: List[RunError] = field(default_factory=list)

    def add_error(self, key, message):
        self.errors.append(RunError(str(key), str(message)))

    def to_dict(self):
        return {
            "newMatches": self.new_matches,
            "updatedMatches": self.updated_matches,
            "totalMatches": self.total_matches,
            "errors": [error.to_dict() for error in self.errors],
        }


@dataclass
class ProcessingResult:
    match_id: Optional[int] = None
    processed_predictions: int = 0
    total_points_awarded: int = 0
    errors: List[RunError] = field(default_factory=list)

    def add_error(self, key, message):
        self.errors.append(RunError(str(key), str(message)))


@dataclass
class BatchProcessingResult:
    processed_matches: int = 0
    total_predictions_processed: int = 0
    total_points_awarded: int = 0
    failed: bool = False
    errors: List[RunError] = field(default_factory=list)

    def add_error(self, key, message):
        self.errors.append(RunError(str(key), str(message)))

    def merge(self, match_result, completed=True):
        """Fold a single match result into the batch totals"""
        if completed:
            self.processed_matches += 1
        self.total_predictions_processed += match_result.processed_predictions
        self.total_points_awarded += match_result.total_points_awarded
        self.errors.extend(match_result.errors)

    def to_dict(self):
        return {
            "processedMatches": self.processed_matches,
            "totalPredictionsProcessed": self.total_predictions_processed,
            "totalPointsAwarded": self.total_points_awarded,
            "errors": [error.to_dict() for error in self.errors],
        }
