"""Entity codec — in-memory entities ⇄ remote records.

Purely structural: decoders raise ValidationError when a required field is
missing, and ``decode_many`` drops such records so one bad record never
blocks a batch.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Iterable, TypeVar

from .errors import ValidationError
from .records import Record
from .utils import format_timestamp, member_record_id, parse_timestamp

T = TypeVar("T")

TEAM_MEMBER_TYPE = "TeamMember"
SCORE_RECORD_TYPE = "ScoreRecord"
CARD_TYPE = "Card"
GOAL_NAMES_TYPE = "GoalNames"
GOAL_NAMES_ID = "GoalNames"


# ══════════════════════════════════════════════════════════
#  Field helpers
# ══════════════════════════════════════════════════════════

def _require_str(record: Record, key: str, allow_empty: bool = True) -> str:
    value = record[key]
    if not isinstance(value, str):
        raise ValidationError(record.record_id, key)
    if not allow_empty and not value.strip():
        raise ValidationError(record.record_id, key, "empty")
    return value


def _require_int(record: Record, key: str) -> int:
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError(record.record_id, key)
    return int(value)


def _int(record: Record, key: str, default: int = 0) -> int:
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return int(value)


def _float(record: Record, key: str, default: float = 0.0) -> float:
    value = record[key]
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return float(value)


def _str(record: Record, key: str, default: str | None = None) -> str | None:
    value = record[key]
    return value if isinstance(value, str) else default


def _new_or_existing(existing: Record | None, record_type: str, record_id: str) -> Record:
    if existing is not None:
        return existing
    return Record(record_type=record_type, record_id=record_id)


# ══════════════════════════════════════════════════════════
#  Team members & streak state
# ══════════════════════════════════════════════════════════

@dataclass
class TeamMember:
    """Production counters and goals for one member."""

    name: str
    quotesToday: int = 0
    quotesGoal: int = 1
    salesWTD: int = 0
    salesWTDGoal: int = 1
    salesMTD: int = 0
    salesMTDGoal: int = 1
    emoji: str = "🙂"
    emojiUserSet: bool = False
    sortIndex: int = 0
    pending: int = 0
    projected: float = 0.0
    actual: int = 0
    score: int = 0

    @property
    def record_id(self) -> str:
        return member_record_id(self.name)

    @classmethod
    def from_record(cls, record: Record) -> TeamMember:
        name = _require_str(record, "name", allow_empty=False)
        return cls(
            name=name,
            quotesToday=_int(record, "quotesToday"),
            quotesGoal=_int(record, "quotesGoal", 1),
            salesWTD=_int(record, "salesWTD"),
            salesWTDGoal=_int(record, "salesWTDGoal", 1),
            salesMTD=_int(record, "salesMTD"),
            salesMTDGoal=_int(record, "salesMTDGoal", 1),
            emoji=_str(record, "emoji", "🙂"),
            emojiUserSet=bool(record.get("emojiUserSet", False)),
            sortIndex=_int(record, "sortIndex"),
            pending=_int(record, "pending"),
            projected=_float(record, "projected"),
            actual=_int(record, "actual"),
            score=_int(record, "score"),
        )

    def to_record(self, existing: Record | None = None) -> Record:
        record = _new_or_existing(existing, TEAM_MEMBER_TYPE, self.record_id)
        record["name"] = self.name
        record["emoji"] = self.emoji
        record["emojiUserSet"] = self.emojiUserSet
        record["pending"] = self.pending
        record["projected"] = float(self.projected)
        record["actual"] = self.actual
        record["quotesGoal"] = self.quotesGoal
        record["quotesToday"] = self.quotesToday
        record["salesMTD"] = self.salesMTD
        record["salesMTDGoal"] = self.salesMTDGoal
        record["salesWTD"] = self.salesWTD
        record["salesWTDGoal"] = self.salesWTDGoal
        record["score"] = self.score
        record["sortIndex"] = self.sortIndex
        return record


@dataclass
class MemberStreakState:
    """Streak, trophy and period-key fields stored on ``member-<name>``."""

    name: str
    weekKey: str | None = None
    monthKey: str | None = None
    streakCountWeek: int = 0
    streakCountMonth: int = 0
    totalWins: int = 0
    lastCompletedAt: datetime | None = None
    trophies: list[str] = field(default_factory=list)
    quotesToday: int = 0
    salesWTD: int = 0
    salesMTD: int = 0
    trophyStreakCount: int = 0
    trophyLastFinalizedWeekId: str | None = None

    @classmethod
    def from_record(cls, record: Record) -> MemberStreakState:
        name = _str(record, "name")
        if not name:
            prefix = "member-"
            if not record.record_id.startswith(prefix):
                raise ValidationError(record.record_id, "name")
            name = record.record_id[len(prefix):]
        raw_trophies = record.get("trophies", [])
        if not isinstance(raw_trophies, list):
            raise ValidationError(record.record_id, "trophies", "is not a list")
        return cls(
            name=name,
            weekKey=_str(record, "weekKey"),
            monthKey=_str(record, "monthKey"),
            streakCountWeek=_int(record, "streakCountWeek"),
            streakCountMonth=_int(record, "streakCountMonth"),
            totalWins=_int(record, "totalWins"),
            lastCompletedAt=parse_timestamp(record["lastCompletedAt"]),
            trophies=sorted({str(t) for t in raw_trophies}),
            quotesToday=_int(record, "quotesToday"),
            salesWTD=_int(record, "salesWTD"),
            salesMTD=_int(record, "salesMTD"),
            trophyStreakCount=_int(record, "trophyStreakCount"),
            trophyLastFinalizedWeekId=_str(record, "trophyLastFinalizedWeekId"),
        )

    def to_record(self, existing: Record | None = None) -> Record:
        record = _new_or_existing(existing, TEAM_MEMBER_TYPE, member_record_id(self.name))
        record["name"] = self.name
        record["weekKey"] = self.weekKey
        record["monthKey"] = self.monthKey
        record["streakCountWeek"] = self.streakCountWeek
        record["streakCountMonth"] = self.streakCountMonth
        record["totalWins"] = self.totalWins
        record["lastCompletedAt"] = format_timestamp(self.lastCompletedAt)
        record["trophies"] = sorted(set(self.trophies))
        record["quotesToday"] = self.quotesToday
        record["salesWTD"] = self.salesWTD
        record["salesMTD"] = self.salesMTD
        record["trophyStreakCount"] = self.trophyStreakCount
        record["trophyLastFinalizedWeekId"] = self.trophyLastFinalizedWeekId
        return record

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "weekKey": self.weekKey,
            "monthKey": self.monthKey,
            "streakCountWeek": self.streakCountWeek,
            "streakCountMonth": self.streakCountMonth,
            "totalWins": self.totalWins,
            "lastCompletedAt": format_timestamp(self.lastCompletedAt),
            "trophies": list(self.trophies),
            "quotesToday": self.quotesToday,
            "salesWTD": self.salesWTD,
            "salesMTD": self.salesMTD,
            "trophyStreakCount": self.trophyStreakCount,
            "trophyLastFinalizedWeekId": self.trophyLastFinalizedWeekId,
        }


# ══════════════════════════════════════════════════════════
#  Scoreboard
# ══════════════════════════════════════════════════════════

@dataclass
class ScoreEntry:
    name: str
    score: int = 0


@dataclass
class ActivityRow:
    """A scoreboard row: score plus pending/projected activity."""

    name: str
    score: int = 0
    pending: int = 0
    projected: float = 0.0

    @property
    def entry(self) -> ScoreEntry:
        return ScoreEntry(name=self.name, score=self.score)

    @property
    def record_id(self) -> str:
        return f"score-{self.name}"

    @classmethod
    def from_record(cls, record: Record) -> ActivityRow:
        return cls(
            name=_require_str(record, "name", allow_empty=False),
            score=_int(record, "score"),
            pending=_int(record, "pending"),
            projected=_float(record, "projected"),
        )

    def to_record(self, existing: Record | None = None) -> Record:
        record = _new_or_existing(existing, SCORE_RECORD_TYPE, self.record_id)
        record["name"] = self.name
        record["score"] = self.score
        record["pending"] = self.pending
        record["projected"] = float(self.projected)
        return record


# ══════════════════════════════════════════════════════════
#  Cards & goal labels
# ══════════════════════════════════════════════════════════

@dataclass
class Card:
    id: str
    name: str
    emoji: str = ""
    production: int = 0
    orderIndex: int = 0

    @classmethod
    def from_record(cls, record: Record) -> Card:
        return cls(
            id=record.record_id,
            name=_require_str(record, "name"),
            emoji=_require_str(record, "emoji"),
            production=_require_int(record, "production"),
            orderIndex=_int(record, "orderIndex"),
        )

    def to_record(self, existing: Record | None = None) -> Record:
        record = _new_or_existing(existing, CARD_TYPE, self.id)
        record["name"] = self.name
        record["emoji"] = self.emoji
        record["production"] = self.production
        record["orderIndex"] = self.orderIndex
        return record

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "emoji": self.emoji,
            "production": self.production,
            "orderIndex": self.orderIndex,
        }


@dataclass
class GoalNames:
    quotes: str = "Quotes WTD"
    salesWTD: str = "Sales WTD"
    salesMTD: str = "Sales MTD"

    @classmethod
    def from_record(cls, record: Record) -> GoalNames:
        return cls(
            quotes=_require_str(record, "quotesLabel"),
            salesWTD=_require_str(record, "salesWTDLabel"),
            salesMTD=_require_str(record, "salesMTDLabel"),
        )

    def to_record(self, existing: Record | None = None) -> Record:
        record = _new_or_existing(existing, GOAL_NAMES_TYPE, GOAL_NAMES_ID)
        record["quotesLabel"] = self.quotes
        record["salesWTDLabel"] = self.salesWTD
        record["salesMTDLabel"] = self.salesMTD
        return record


def decode_many(
    records: Iterable[Record],
    decoder: Callable[[Record], T],
    logger: logging.Logger | None = None,
) -> list[T]:
    """Decode every valid record, logging and skipping the rest."""
    log = logger or logging.getLogger("streaks.codec")
    decoded: list[T] = []
    for record in records:
        try:
            decoded.append(decoder(record))
        except ValidationError as e:
            log.warning("Skipping record: %s", e)
    return decoded
