# src/codable_bff/stats.py

import typing
from datetime import date, datetime, timedelta, timezone

from .data_access import Repository, utc_now_iso

MINUTES_PER_ANALYSIS = 4
MINUTES_PER_SOLUTION = 12
MINUTES_PER_CONVERSATION = 2.5


def _to_date(value: typing.Union[str, datetime, date]) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.fromisoformat(value.replace("Z", "+00:00")).date()


def current_streak(activity_dates: typing.Iterable[typing.Union[str, datetime, date]],
                   today: typing.Optional[date] = None) -> int:
    """
    Consecutive active days ending today, or yesterday if there is no
    activity yet today. Multiple activities on one day count once.
    """
    today = today or datetime.now(timezone.utc).date()
    days = {_to_date(d) for d in activity_dates}
    if not days:
        return 0

    if today in days:
        cursor = today
    elif today - timedelta(days=1) in days:
        cursor = today - timedelta(days=1)
    else:
        return 0

    streak = 0
    while cursor in days:
        streak += 1
        cursor -= timedelta(days=1)
    return streak


def estimate_time_spent(analyses: int, solutions: int, conversations: int) -> int:
    return round(
        analyses * MINUTES_PER_ANALYSIS
        + solutions * MINUTES_PER_SOLUTION
        + conversations * MINUTES_PER_CONVERSATION
    )


class UserStatsService:
    """Advisory usage counters; failures here never undo the work they count."""

    def __init__(self, repository: Repository, user_id: str):
        self.repository = repository
        self.user_id = user_id

    async def _activity(self) -> typing.Tuple[typing.List[dict], typing.List[dict]]:
        analyses = await self.repository.get_code_analyses(self.user_id)
        solutions = await self.repository.get_problem_solutions(self.user_id)
        return analyses, solutions

    async def fetch(self) -> dict:
        stats = await self.repository.get_user_stats(self.user_id)
        analyses, solutions = await self._activity()
        conversations = await self.repository.get_conversations(self.user_id)
        dates = [row["created_at"] for row in analyses + solutions if row.get("created_at")]
        return dict(
            stats,
            current_streak=current_streak(dates),
            calculated_total_time=estimate_time_spent(len(analyses), len(solutions), len(conversations)),
        )

    async def _increment(self, counter: str) -> dict:
        stats = await self.repository.get_user_stats(self.user_id)
        analyses, solutions = await self._activity()
        dates = [row["created_at"] for row in analyses + solutions if row.get("created_at")]
        streak = current_streak(dates)
        updates = {
            counter: (stats.get(counter) or 0) + 1,
            "current_streak": streak,
            "longest_streak": max(stats.get("longest_streak") or 0, streak),
            "last_activity": utc_now_iso(),
        }
        await self.repository.update_user_stats(self.user_id, updates)
        print(f"STATS: {counter} -> {updates[counter]} for user {self.user_id}")
        return dict(stats, **updates)

    async def increment_analyses(self) -> dict:
        return await self._increment("total_analyses")

    async def increment_problems_solved(self) -> dict:
        return await self._increment("problems_solved")

    async def touch(self) -> None:
        await self.repository.update_user_stats(self.user_id, {"last_activity": utc_now_iso()})
