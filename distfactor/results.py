"""
Result sink for completed factorizations.

Writes a human-readable results.txt and appends a JSON record per run to
data/results.json.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import ResultsSettings
from .constants import Kind
from .user_output import UserOutput
from .utils.file_utils import append_json_record

logger = logging.getLogger(__name__)


@dataclass
class FactorizationResult:
    """One completed run."""
    number: int
    factors: List[int]
    elapsed: float
    algorithm: Optional[Kind] = None
    completed_at: str = field(default_factory=lambda: datetime.now().isoformat())

    @property
    def bit_length(self) -> int:
        return self.number.bit_length()

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        # Stored as strings to keep full precision
        data["number"] = str(self.number)
        data["factors"] = [str(f) for f in self.factors]
        data["algorithm"] = self.algorithm.value if self.algorithm else None
        data["bit_length"] = self.bit_length
        return data

    def format_text(self) -> str:
        seconds = int(self.elapsed)
        millis = int((self.elapsed - seconds) * 1000)
        winner = self.algorithm.label if self.algorithm else "none (prime input)"
        lines = [
            "Factorization Results",
            "",
            f"{self.number} = {' * '.join(str(f) for f in self.factors)}",
            "",
            f"{seconds} seconds, {millis} millis",
            f"Bit length: {self.bit_length}",
            f"Winning algorithm: {winner}",
        ]
        return "\n".join(lines) + "\n"


class ResultSink:
    """Persist and announce completed factorizations."""

    def __init__(self, settings: ResultsSettings, output: Optional[UserOutput] = None):
        self.settings = settings
        self.output = output or UserOutput()
        self.results: List[FactorizationResult] = []

    def __call__(self, number: int, factors: List[int], elapsed: float,
                 algorithm: Optional[Kind] = None) -> FactorizationResult:
        return self.record(number, factors, elapsed, algorithm)

    def record(self, number: int, factors: List[int], elapsed: float,
               algorithm: Optional[Kind] = None) -> FactorizationResult:
        result = FactorizationResult(
            number=number, factors=list(factors), elapsed=elapsed, algorithm=algorithm
        )
        self.results.append(result)
        self.output.result_summary(
            number, result.factors, elapsed, algorithm.label if algorithm else None
        )

        if not self.settings.enabled:
            return result

        text_path = Path(self.settings.text_file)
        try:
            text_path.parent.mkdir(parents=True, exist_ok=True)
            text_path.write_text(result.format_text(), encoding='utf-8')
        except OSError as e:
            logger.error(f"Failed to write {text_path}: {e}")

        if not append_json_record(Path(self.settings.json_file), result.to_dict()):
            logger.warning(f"Result for {number} not recorded in {self.settings.json_file}")
        return result
