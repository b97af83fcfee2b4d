"""Team repository — record-level reads and writes used by the app shell.

Wraps the record store with the entity codec: card fetches (the default
fetcher behind the FetchCoordinator), member roster, scoreboard rows, goal
labels and the explicit "remove user everywhere" flow.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .cache_mirror import merge_members
from .codec import (
    CARD_TYPE,
    GOAL_NAMES_ID,
    SCORE_RECORD_TYPE,
    TEAM_MEMBER_TYPE,
    ActivityRow,
    Card,
    GoalNames,
    TeamMember,
    decode_many,
)
from .errors import ConflictError, NotFoundError, ValidationError
from .utils import clean_name, member_record_id

if TYPE_CHECKING:
    from .cache_mirror import LocalCacheMirror
    from .records import RecordStore


class TeamRepository:
    """Codec-aware access to team records."""

    def __init__(
        self,
        store: RecordStore,
        cache: LocalCacheMirror | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._cache = cache
        self._logger = logger or logging.getLogger("streaks.repository")

    # ══════════════════════════════════════════════════════════
    #  Cards
    # ══════════════════════════════════════════════════════════

    async def fetch_cards(self, names: list[str]) -> list[Card]:
        """Cards whose name is in *names* (all cards when empty)."""
        records = await self._store.query(CARD_TYPE)
        cards = decode_many(records, Card.from_record, self._logger)
        if names:
            wanted = set(names)
            cards = [c for c in cards if c.name in wanted]
        cards.sort(key=lambda c: (c.orderIndex, c.name))
        self._logger.debug("Fetched %d card(s) for %d name(s)", len(cards), len(names))
        return cards

    async def save_card(self, card: Card) -> Card:
        try:
            existing = await self._store.fetch(card.id)
        except NotFoundError:
            existing = None
        stored = await self._store.save(card.to_record(existing))
        return Card.from_record(stored)

    # ══════════════════════════════════════════════════════════
    #  Members
    # ══════════════════════════════════════════════════════════

    async def fetch_all_members(self) -> list[TeamMember]:
        """Remote roster merged over the cached one; the merge is re-cached."""
        records = await self._store.query(TEAM_MEMBER_TYPE)
        fetched = decode_many(records, TeamMember.from_record, self._logger)
        if self._cache is None:
            return sorted(fetched, key=lambda m: m.sortIndex)
        merged = merge_members(self._cache.load_members(), fetched)
        await self._cache.store_members_async(merged)
        return merged

    async def fetch_member(self, name: str) -> TeamMember | None:
        records = await self._store.query(TEAM_MEMBER_TYPE, "name", clean_name(name))
        members = decode_many(records, TeamMember.from_record, self._logger)
        return members[0] if members else None

    async def save_member(self, member: TeamMember) -> TeamMember:
        """Write goals/profile fields, leaving streak fields on the record intact."""
        try:
            existing = await self._store.fetch(member.record_id)
        except NotFoundError:
            existing = None
        stored = await self._store.save(member.to_record(existing))
        await self._cache_member(member)
        return TeamMember.from_record(stored)

    async def ensure_member(self, name: str, emoji: str = "🙂") -> bool:
        """Create ``member-<name>`` and a default card if missing.

        New members inherit goals from the first existing member so the
        team shares targets. Returns True when a record was created.
        """
        name = clean_name(name)
        if not name:
            raise ValueError("Member name must not be blank")

        records = await self._store.query(TEAM_MEMBER_TYPE)
        roster = sorted(
            decode_many(records, TeamMember.from_record, self._logger),
            key=lambda m: m.sortIndex,
        )
        if any(m.name.lower() == name.lower() for m in roster):
            return False

        member = TeamMember(name=name, emoji=emoji, sortIndex=len(roster))
        if roster:
            template = roster[0]
            member.quotesGoal = template.quotesGoal
            member.salesWTDGoal = template.salesWTDGoal
            member.salesMTDGoal = template.salesMTDGoal

        try:
            await self._store.save(member.to_record(), conditional=True)
        except ConflictError:
            self._logger.info("Member %s was created concurrently", name)
            return False

        card = Card(id=f"card-{name}", name=name, emoji="✨", production=0, orderIndex=0)
        try:
            await self._store.save(card.to_record(), conditional=True)
        except ConflictError:
            pass  # card already exists
        await self._cache_member(member)
        self._logger.info("Created member %s (sortIndex=%d)", name, member.sortIndex)
        return True

    async def delete_member_everywhere(self, name: str) -> int:
        """Remove the member, card and score records. Returns records deleted."""
        deleted = 0
        for record_id in (member_record_id(name), f"card-{name}", ActivityRow(name).record_id):
            try:
                await self._store.delete(record_id)
                deleted += 1
            except NotFoundError:
                continue
        if self._cache is not None:
            remaining = [m for m in self._cache.load_members() if m.name.strip() != name.strip()]
            await self._cache.store_members_async(remaining)
            await self._cache.delete_async(f"streak:{name}")
        self._logger.info("Deleted %d record(s) for %s", deleted, name)
        return deleted

    async def _cache_member(self, member: TeamMember) -> None:
        if self._cache is not None:
            await self._cache.store_members_async(merge_members(self._cache.load_members(), [member]))

    # ══════════════════════════════════════════════════════════
    #  Scores
    # ══════════════════════════════════════════════════════════

    async def fetch_scores(self, names: list[str]) -> dict[str, ActivityRow]:
        """Scoreboard rows keyed by member name; missing members get zeros."""
        records = await self._store.query(SCORE_RECORD_TYPE)
        rows = {r.name: r for r in decode_many(records, ActivityRow.from_record, self._logger)}
        return {name: rows.get(name, ActivityRow(name=name)) for name in names}

    async def save_score(self, row: ActivityRow) -> ActivityRow:
        try:
            existing = await self._store.fetch(row.record_id)
        except NotFoundError:
            existing = None
        stored = await self._store.save(row.to_record(existing))
        return ActivityRow.from_record(stored)

    # ══════════════════════════════════════════════════════════
    #  Goal labels
    # ══════════════════════════════════════════════════════════

    async def fetch_goal_names(self) -> GoalNames:
        """Stored labels, or the defaults when absent or malformed."""
        try:
            record = await self._store.fetch(GOAL_NAMES_ID)
            return GoalNames.from_record(record)
        except NotFoundError:
            return GoalNames()
        except ValidationError as e:
            self._logger.warning("Using default goal names: %s", e)
            return GoalNames()

    async def save_goal_names(self, names: GoalNames) -> GoalNames:
        try:
            existing = await self._store.fetch(GOAL_NAMES_ID)
        except NotFoundError:
            existing = None
        stored = await self._store.save(names.to_record(existing))
        return GoalNames.from_record(stored)
