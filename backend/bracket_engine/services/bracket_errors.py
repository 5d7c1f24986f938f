"""
Bracket error taxonomy.

Domain failures are carried as Violation records inside result objects so a
half-built or corrupted bracket stays an inspectable state. The only raised
error is ShapeViolation from the pure generator, which has no result channel;
callers that persist (bracket_builder) convert it back into a Violation.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# ─── Codes ────────────────────────────────────────────────────────────────

SHAPE_VIOLATION = "SHAPE_VIOLATION"
LINK_VIOLATION = "LINK_VIOLATION"
SLOT_ALREADY_RESOLVED = "SLOT_ALREADY_RESOLVED"
DUPLICATE_TOPOLOGY = "DUPLICATE_TOPOLOGY"

# Consistency guard
ORPHAN_GAME = "ORPHAN_GAME"
MISSING_WINNER_TARGET = "MISSING_WINNER_TARGET"
TERMINAL_HAS_EDGE = "TERMINAL_HAS_EDGE"
UNEXPECTED_LOSER_TARGET = "UNEXPECTED_LOSER_TARGET"
CYCLE = "CYCLE"
SLOT_MULTIPLY_FED = "SLOT_MULTIPLY_FED"
SLOT_UNFED = "SLOT_UNFED"
ROUND_COUNT_MISMATCH = "ROUND_COUNT_MISMATCH"
GAME_COUNT_MISMATCH = "GAME_COUNT_MISMATCH"

# Propagation / generation preconditions
TOURNAMENT_NOT_FOUND = "TOURNAMENT_NOT_FOUND"
GAME_NOT_FOUND = "GAME_NOT_FOUND"
GAME_NOT_COMPLETED = "GAME_NOT_COMPLETED"
INVALID_RESULT = "INVALID_RESULT"
EXISTING_GAMES = "EXISTING_GAMES"


@dataclass
class Violation:
    code: str
    message: str
    bracket_position: Optional[str] = None
    game_id: Optional[int] = None
    context: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "bracket_position": self.bracket_position,
            "game_id": self.game_id,
            "context": self.context,
        }


class ShapeViolation(ValueError):
    """Seeding or shape parameters cannot produce the requested bracket."""

    def __init__(self, message: str, problems: Optional[List[str]] = None):
        super().__init__(message)
        self.problems: List[str] = list(problems or [])

    def to_violation(self) -> Violation:
        context = {"problems": self.problems} if self.problems else None
        return Violation(code=SHAPE_VIOLATION, message=str(self), context=context)


@dataclass
class ViolationReport:
    ok: bool
    violations: List[Violation] = field(default_factory=list)

    def codes(self) -> List[str]:
        return [v.code for v in self.violations]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "violations": [v.to_dict() for v in self.violations],
        }
