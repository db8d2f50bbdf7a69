from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class ValidationSummary:
    """Everything a validation run reports back to the terminal (and the run ledger)."""
    kind: str
    source: str
    total: int
    valid: int
    rejected: int
    alert_sent: bool
    run_id: UUID | None = None

    def render_one_line(self) -> str:
        """How each line of summary is formatted for the terminal."""
        line = (
            f"{self.kind} ({self.source}): total={self.total} valid={self.valid} "
            f"rejected={self.rejected} alert_sent={str(self.alert_sent).lower()}"
        )
        if self.run_id is not None:
            line += f" run_id={self.run_id}"
        return line
