"""Streak & reset engine — weekly/monthly resets, win streaks and trophies.

Every operation is a read-modify-write against the record store:
fetch ``member-<name>``, apply a pure mutation to a decoded copy, and save
it conditionally. A lost optimistic-concurrency race re-runs the whole
cycle with exponential backoff, so redundant resets from several devices
collapse into no-ops while win increments are never dropped.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Awaitable, Callable

from .codec import MemberStreakState
from .errors import ConflictError, NotFoundError, StreakSyncError, TransientIOError
from .periods import Period, PeriodCalendar, normalize_month_key, normalize_week_key
from .utils import member_record_id, now_utc

if TYPE_CHECKING:
    from .cache_mirror import LocalCacheMirror
    from .config import SyncConfig, TrophyConfig
    from .records import RecordStore

Mutation = Callable[[MemberStreakState, datetime], bool]


class SyncResult(Enum):
    UPDATED = "updated"
    UNCHANGED = "unchanged"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    FAILED = "failed"


@dataclass(frozen=True)
class SyncOutcome:
    result: SyncResult
    member: str
    state: MemberStreakState | None = None
    attempts: int = 0
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.result in (SyncResult.UPDATED, SyncResult.UNCHANGED)

    @property
    def wrote(self) -> bool:
        return self.result is SyncResult.UPDATED

    def raise_for_error(self) -> None:
        """Re-raise the captured error for callers that prefer exceptions."""
        if self.error is not None:
            raise self.error


# ══════════════════════════════════════════════════════════
#  Pure mutations
# ══════════════════════════════════════════════════════════

def apply_weekly_reset(state: MemberStreakState, current_key: str) -> bool:
    """Align the weekly counters with *current_key*. Returns True on change."""
    stored = normalize_week_key(state.weekKey)
    if stored == current_key or stored is None:
        # Same week in a legacy spelling, or no usable key yet: stamp the key only
        if state.weekKey != current_key:
            state.weekKey = current_key
            return True
        return False

    state.weekKey = current_key
    state.streakCountWeek = 0
    state.quotesToday = 0
    state.salesWTD = 0
    return True


def apply_monthly_reset(state: MemberStreakState, current_key: str) -> bool:
    """Align the monthly counters with *current_key*. Returns True on change."""
    stored = normalize_month_key(state.monthKey)
    if stored == current_key or stored is None:
        if state.monthKey != current_key:
            state.monthKey = current_key
            return True
        return False

    state.monthKey = current_key
    state.streakCountMonth = 0
    state.salesMTD = 0
    return True


def milestone_trophies(streak: int, prefix: str, config: TrophyConfig) -> list[str]:
    """Badges earned by reaching exactly *streak*."""
    if streak not in config.milestones:
        return []
    label = config.first_label if streak == 1 else str(streak)
    return [f"{prefix}_{label}"]


def updated_trophies(existing: list[str], weekly: int, monthly: int, config: TrophyConfig) -> list[str]:
    """Union new milestone badges into *existing*; never removes any."""
    badges = set(existing)
    badges.update(milestone_trophies(weekly, config.weekly_prefix, config))
    badges.update(milestone_trophies(monthly, config.monthly_prefix, config))
    return sorted(badges)


# ══════════════════════════════════════════════════════════
#  Engine
# ══════════════════════════════════════════════════════════

class StreakEngine:
    """Keeps each member's streak record consistent across devices."""

    def __init__(
        self,
        store: RecordStore,
        config: SyncConfig,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = now_utc,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        cache: LocalCacheMirror | None = None,
    ) -> None:
        self._store = store
        self._config = config
        self._calendar = PeriodCalendar.from_config(config.periods)
        self._logger = logger or logging.getLogger("streaks.engine")
        self._clock = clock
        self._sleep = sleep
        self._cache = cache

        # Metrics counters (exposed to status_server)
        self.writes: int = 0
        self.conflicts: int = 0
        self.failures: int = 0

    @property
    def calendar(self) -> PeriodCalendar:
        return self._calendar

    # ══════════════════════════════════════════════════════════
    #  Public API
    # ══════════════════════════════════════════════════════════

    async def app_became_active(self, member: str) -> SyncOutcome:
        """Reset weekly/monthly counters whose stored key has drifted."""
        return await self._modify(member, "app_became_active", self._apply_resets)

    async def mark_win(self, member: str) -> SyncOutcome:
        """Register a completed goal after applying any pending resets."""

        def mutate(state: MemberStreakState, now: datetime) -> bool:
            self._apply_resets(state, now)
            state.streakCountWeek += 1
            state.streakCountMonth += 1
            state.totalWins += 1
            state.lastCompletedAt = now
            state.trophies = updated_trophies(
                state.trophies, state.streakCountWeek, state.streakCountMonth, self._config.trophies,
            )
            return True

        return await self._modify(member, "mark_win", mutate)

    async def reset_period_if_needed(self, member: str, period: Period) -> SyncOutcome:
        """Evaluate a single period's reset, independent of any win."""

        def mutate(state: MemberStreakState, now: datetime) -> bool:
            if period is Period.WEEKLY:
                return apply_weekly_reset(state, self._calendar.week_key(now))
            return apply_monthly_reset(state, self._calendar.month_key(now))

        return await self._modify(member, f"reset_{period.value}", mutate)

    async def finalize_week(self, member: str, week_id: str, did_win: bool) -> SyncOutcome:
        """Close out *week_id* for the trophy streak. Repeat calls are no-ops.

        A pending monthly reset is applied first so monthly badges are
        judged against the current month's streak.
        """

        def mutate(state: MemberStreakState, now: datetime) -> bool:
            if state.trophyLastFinalizedWeekId == week_id:
                return False
            apply_monthly_reset(state, self._calendar.month_key(now))
            state.trophyStreakCount = state.trophyStreakCount + 1 if did_win else 0
            state.trophyLastFinalizedWeekId = week_id
            state.trophies = updated_trophies(
                state.trophies, state.trophyStreakCount, state.streakCountMonth, self._config.trophies,
            )
            return True

        return await self._modify(member, "finalize_week", mutate)

    # ══════════════════════════════════════════════════════════
    #  Read-modify-write
    # ══════════════════════════════════════════════════════════

    def _apply_resets(self, state: MemberStreakState, now: datetime) -> bool:
        weekly = apply_weekly_reset(state, self._calendar.week_key(now))
        monthly = apply_monthly_reset(state, self._calendar.month_key(now))
        return weekly or monthly

    async def _modify(self, member: str, operation: str, mutate: Mutation) -> SyncOutcome:
        record_id = member_record_id(member)
        retry = self._config.retry
        last_conflict: ConflictError | None = None
        attempt = 0

        while attempt <= retry.max_retries:
            attempt += 1
            try:
                record = await self._store.fetch(record_id)
                state = MemberStreakState.from_record(record)
            except NotFoundError as e:
                return self._fail(SyncResult.NOT_FOUND, member, operation, attempt, e)
            except Exception as e:
                return self._fail(SyncResult.FAILED, member, operation, attempt, self._wrap(e))

            try:
                changed = mutate(state, self._clock())
            except Exception as e:
                return self._fail(SyncResult.FAILED, member, operation, attempt, self._wrap(e))
            if not changed:
                self._logger.debug("%s for %s: no change", operation, member)
                return SyncOutcome(SyncResult.UNCHANGED, member, state, attempt)

            try:
                await self._store.save(state.to_record(existing=record), conditional=True)
            except ConflictError as e:
                self.conflicts += 1
                last_conflict = e
                if attempt > retry.max_retries:
                    break
                delay = retry.base_delay_seconds * (2 ** (attempt - 1))
                self._logger.info(
                    "%s for %s: server record changed, retry %d/%d in %.2fs",
                    operation, member, attempt, retry.max_retries, delay,
                )
                await self._sleep(delay)
                continue
            except NotFoundError as e:
                return self._fail(SyncResult.NOT_FOUND, member, operation, attempt, e)
            except Exception as e:
                return self._fail(SyncResult.FAILED, member, operation, attempt, self._wrap(e))

            self.writes += 1
            self._logger.info(
                "%s for %s saved (week=%s month=%s streak=%d/%d wins=%d)",
                operation, member, state.weekKey, state.monthKey,
                state.streakCountWeek, state.streakCountMonth, state.totalWins,
            )
            await self._mirror(state)
            return SyncOutcome(SyncResult.UPDATED, member, state, attempt)

        return self._fail(SyncResult.CONFLICT, member, operation, attempt, last_conflict)

    def _fail(
        self,
        result: SyncResult,
        member: str,
        operation: str,
        attempts: int,
        error: Exception | None,
    ) -> SyncOutcome:
        self.failures += 1
        self._logger.warning("%s for %s failed (%s): %s", operation, member, result.value, error)
        return SyncOutcome(result, member, None, attempts, error)

    @staticmethod
    def _wrap(error: Exception) -> Exception:
        if isinstance(error, StreakSyncError):
            return error
        wrapped = TransientIOError(str(error) or type(error).__name__)
        wrapped.__cause__ = error
        return wrapped

    async def _mirror(self, state: MemberStreakState) -> None:
        if self._cache is not None:
            await self._cache.store_async(f"streak:{state.name}", state.to_dict())
