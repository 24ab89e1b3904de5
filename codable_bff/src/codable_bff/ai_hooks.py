# src/codable_bff/ai_hooks.py

import typing

from pydantic import ValidationError

from .ai_models import ChatReply, CodeAnalysisResult, CodeOptimization, ProblemSolution
from .ai_providers import AIProvider, ProviderRegistry, ProviderResponse
from .ai_switch import AIProviderSwitch
from .errors import CodableError, MalformedAIResponse, NetworkOrProviderError, Unauthenticated
from .hosted_service import HostedServiceClient
from .json_extract import extract_json_object
from .prompts import CHAT_PERSONA, analysis_prompt, chat_prompt, optimization_prompt, solution_prompt
from .data_access import Repository
from .session_data import Session
from .session_store import SessionStore
from .stats import UserStatsService
from .toasts import Toaster


class _AIHook:
    """
    Shared shape of the AI request/response wrappers.

    Each call takes a monotonically increasing request id; only the most
    recently started call publishes into `self.result`, so a slow earlier
    response cannot overwrite a newer one. `loading` stays set while any
    call is in flight.
    """

    sign_in_message = "Please sign in to continue"

    def __init__(
            self,
            session_store: SessionStore,
            switch: AIProviderSwitch,
            registry: ProviderRegistry,
            hosted: HostedServiceClient,
            toaster: Toaster,
    ):
        self.session_store = session_store
        self.switch = switch
        self.registry = registry
        self.hosted = hosted
        self.toaster = toaster
        self.result: typing.Any = None
        self._last_request_id = 0
        self._in_flight = 0

    @property
    def loading(self) -> bool:
        return self._in_flight > 0

    def _require_session(self) -> Session:
        session = self.session_store.current
        if session is None:
            self.toaster.error(self.sign_in_message)
            raise Unauthenticated(self.sign_in_message)
        return session

    def _require_text(self, value: typing.Optional[str], message: str) -> str:
        if not value or not value.strip():
            self.toaster.error(message)
            raise ValueError(message)
        return value

    def _current_provider(self) -> AIProvider:
        # Read at call time so a provider switch applies to the next request
        return self.registry.get(self.switch.get_provider())

    def _start(self) -> int:
        self._last_request_id += 1
        self._in_flight += 1
        return self._last_request_id

    def _finish(self, request_id: int, value: typing.Any) -> None:
        if request_id == self._last_request_id:
            self.result = value
        else:
            print(f"AI: Discarding stale result of request {request_id} (latest is {self._last_request_id})")

    def _fail(self, error: Exception, provider: typing.Optional[AIProvider]) -> None:
        if isinstance(error, CodableError):
            message = error.user_message
        else:
            message = str(error) or "Request failed"
        if provider is not None and not isinstance(error, Unauthenticated):
            message = f"{message} {provider.remediation_hint}"
        self.toaster.error(message)

    @staticmethod
    def _repository(session: Session, hosted: HostedServiceClient) -> Repository:
        return Repository(hosted, session.access_token)


def _structured(response: ProviderResponse, model: typing.Type, defaults: typing.Optional[dict] = None):
    data = extract_json_object(response.normalized_text)
    cleaned = {key: value for key, value in data.items() if value is not None}
    for key, value in (defaults or {}).items():
        cleaned.setdefault(key, value)
    try:
        return model(**cleaned)
    except ValidationError as e:
        raise MalformedAIResponse(detail=str(e))


class CodeAnalysisHook(_AIHook):
    sign_in_message = "Please sign in to analyze code"

    async def analyze(self, code: str, language: str, title: typing.Optional[str] = None) -> CodeAnalysisResult:
        session = self._require_session()
        self._require_text(code, "Please provide code to analyze")
        self._require_text(language, "Programming language is required for analysis")

        request_id = self._start()
        provider = None
        try:
            provider = self._current_provider()
            response = await provider.generate(analysis_prompt(code, language))
            analysis = _structured(response, CodeAnalysisResult)

            repository = self._repository(session, self.hosted)
            try:
                await repository.create_code_analysis({
                    "user_id": session.user_id,
                    "title": title or "Code Analysis",
                    "code_content": code,
                    "language": language,
                    "analysis_result": analysis.model_dump(by_alias=True),
                    "score": analysis.score,
                })
                await UserStatsService(repository, session.user_id).increment_analyses()
            except CodableError as e:
                raise NetworkOrProviderError("Analysis complete, but failed to save to database.",
                                             detail=e.detail) from e

            self._finish(request_id, analysis)
            self.toaster.success("Code analysis complete!")
            return analysis
        except Exception as e:
            print(f"AI: Code analysis error ({type(e).__name__}): {e}")
            self._fail(e, provider)
            raise
        finally:
            self._in_flight -= 1


class ProblemSolverHook(_AIHook):
    sign_in_message = "Please sign in to solve problems"

    async def solve(self, problem_statement: str, language: str) -> ProblemSolution:
        session = self._require_session()
        self._require_text(problem_statement, "Please provide a problem statement")
        self._require_text(language, "Programming language is required")

        request_id = self._start()
        provider = None
        try:
            provider = self._current_provider()
            response = await provider.generate(solution_prompt(problem_statement, language))
            solution = _structured(response, ProblemSolution, defaults={
                "solution_code": f"// Solution for: {problem_statement}\n// Language: {language}\n",
            })

            repository = self._repository(session, self.hosted)
            try:
                await repository.create_problem_solution({
                    "user_id": session.user_id,
                    "problem_statement": problem_statement,
                    "language": language,
                    "solution_code": solution.solution_code,
                    "explanation": solution.explanation,
                    "execution_result": solution.execution_result.model_dump(),
                    "optimization_suggestions": [s.model_dump() for s in solution.optimization_suggestions],
                })
                await UserStatsService(repository, session.user_id).increment_problems_solved()
            except CodableError as e:
                raise NetworkOrProviderError("Solution generated, but failed to save to database.",
                                             detail=e.detail) from e

            self._finish(request_id, solution)
            self.toaster.success("Solution generated successfully!")
            return solution
        except Exception as e:
            print(f"AI: Problem solving error ({type(e).__name__}): {e}")
            self._fail(e, provider)
            raise
        finally:
            self._in_flight -= 1


class CodeOptimizationHook(_AIHook):
    sign_in_message = "Please sign in to optimize code"

    async def optimize(self, code: str, language: str) -> CodeOptimization:
        self._require_session()
        self._require_text(code, "Please provide code to optimize")
        self._require_text(language, "Programming language is required")

        request_id = self._start()
        provider = None
        try:
            provider = self._current_provider()
            response = await provider.generate(optimization_prompt(code, language))
            optimization = _structured(response, CodeOptimization, defaults={"optimized_code": code})

            self._finish(request_id, optimization)
            self.toaster.success("Code optimization complete!")
            return optimization
        except Exception as e:
            print(f"AI: Code optimization error ({type(e).__name__}): {e}")
            self._fail(e, provider)
            raise
        finally:
            self._in_flight -= 1


class AIChatHook(_AIHook):
    sign_in_message = "Please sign in to use AI assistant"

    async def send_message(self, message: str, conversation_id: typing.Optional[str] = None,
                           context: typing.Optional[str] = None) -> ChatReply:
        session = self._require_session()
        self._require_text(message, "Please enter a message")

        request_id = self._start()
        provider = None
        try:
            provider = self._current_provider()
            response = await provider.generate(chat_prompt(message, context), system=CHAT_PERSONA)

            repository = self._repository(session, self.hosted)
            try:
                if not conversation_id:
                    conversation = await repository.create_conversation(session.user_id)
                    conversation_id = (conversation or {}).get("id")
                if conversation_id:
                    await repository.add_message(conversation_id, "user", message)
                    await repository.add_message(conversation_id, "assistant", response.normalized_text,
                                                 {"provider": response.provider_id.value})
                await UserStatsService(repository, session.user_id).touch()
            except CodableError as e:
                raise NetworkOrProviderError("Reply received, but the conversation could not be saved.",
                                             detail=e.detail) from e

            reply = ChatReply(
                conversation_id=conversation_id,
                response=response.normalized_text,
                provider_id=response.provider_id.value,
            )
            self._finish(request_id, reply)
            return reply
        except Exception as e:
            print(f"AI: Chat error ({type(e).__name__}): {e}")
            self._fail(e, provider)
            raise
        finally:
            self._in_flight -= 1
