# src/codable_bff/data_access.py

import typing
from datetime import datetime, timezone

from .hosted_service import HostedServiceClient

PROFILES = "profiles"
CODE_ANALYSES = "code_analyses"
PROBLEM_SOLUTIONS = "problem_solutions"
USER_STATS = "user_stats"
AI_CONVERSATIONS = "ai_conversations"
AI_MESSAGES = "ai_messages"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def default_user_stats(user_id: str) -> dict:
    now = utc_now_iso()
    return {
        "user_id": user_id,
        "total_analyses": 0,
        "problems_solved": 0,
        "current_streak": 0,
        "longest_streak": 0,
        "time_saved_minutes": 0,
        "total_points": 0,
        "last_activity": now,
        "updated_at": now,
    }


class Repository:
    """
    Row access for one signed-in user. Every call carries the user's access
    token; per-user scoping is enforced by the service's row-level policies.
    """

    def __init__(self, hosted: HostedServiceClient, access_token: str):
        self.hosted = hosted
        self.access_token = access_token

    # Profiles
    async def get_profile(self, user_id: str) -> typing.Optional[dict]:
        return await self.hosted.select(PROFILES, {"id": user_id}, access_token=self.access_token, single=True)

    async def update_profile(self, user_id: str, updates: dict) -> None:
        values = dict(updates, updated_at=utc_now_iso())
        await self.hosted.update(PROFILES, values, {"id": user_id}, access_token=self.access_token)

    async def upsert_profile(self, user_id: str, values: dict) -> None:
        await self.hosted.upsert(PROFILES, dict(values, id=user_id), access_token=self.access_token)

    # Code analyses
    async def get_code_analyses(self, user_id: str) -> typing.List[dict]:
        return await self.hosted.select(
            CODE_ANALYSES, {"user_id": user_id}, order="created_at.desc", access_token=self.access_token
        )

    async def create_code_analysis(self, analysis: dict) -> None:
        await self.hosted.insert(CODE_ANALYSES, analysis, access_token=self.access_token)

    async def delete_code_analysis(self, analysis_id: str) -> None:
        await self.hosted.delete(CODE_ANALYSES, {"id": analysis_id}, access_token=self.access_token)

    # Problem solutions
    async def get_problem_solutions(self, user_id: str) -> typing.List[dict]:
        return await self.hosted.select(
            PROBLEM_SOLUTIONS, {"user_id": user_id}, order="created_at.desc", access_token=self.access_token
        )

    async def create_problem_solution(self, solution: dict) -> None:
        await self.hosted.insert(PROBLEM_SOLUTIONS, solution, access_token=self.access_token)

    # Usage stats
    async def get_user_stats(self, user_id: str) -> dict:
        stats = await self.hosted.select(USER_STATS, {"user_id": user_id}, access_token=self.access_token,
                                         single=True)
        if stats is None:
            stats = default_user_stats(user_id)
            await self.hosted.insert(USER_STATS, stats, access_token=self.access_token)
            print(f"DATA: Created default stats for user {user_id}")
        return stats

    async def update_user_stats(self, user_id: str, updates: dict) -> None:
        row = dict(updates, user_id=user_id, updated_at=utc_now_iso())
        await self.hosted.upsert(USER_STATS, row, access_token=self.access_token)

    # Conversations
    async def get_conversations(self, user_id: str) -> typing.List[dict]:
        return await self.hosted.select(
            AI_CONVERSATIONS, {"user_id": user_id}, order="updated_at.desc", access_token=self.access_token
        )

    async def create_conversation(self, user_id: str, title: typing.Optional[str] = None) -> dict:
        return await self.hosted.insert(
            AI_CONVERSATIONS,
            {"user_id": user_id, "title": title or "New Conversation"},
            access_token=self.access_token,
            returning=True,
        )

    async def get_messages(self, conversation_id: str) -> typing.List[dict]:
        return await self.hosted.select(
            AI_MESSAGES, {"conversation_id": conversation_id}, order="created_at", access_token=self.access_token
        )

    async def add_message(self, conversation_id: str, role: str, content: str,
                          metadata: typing.Optional[dict] = None) -> None:
        if role not in ("user", "assistant"):
            raise ValueError(f"Unknown message role '{role}'")
        await self.hosted.insert(
            AI_MESSAGES,
            {"conversation_id": conversation_id, "role": role, "content": content, "metadata": metadata or {}},
            access_token=self.access_token,
        )

    # Admin panel; the service authorizes these RPCs itself
    async def get_admin_panel_users(self) -> typing.List[dict]:
        return await self.hosted.rpc("get_all_users_for_admin_panel", access_token=self.access_token) or []

    async def delete_user_admin(self, user_id: str) -> typing.Any:
        return await self.hosted.rpc("delete_user_admin", {"user_id_to_delete": user_id},
                                     access_token=self.access_token)
