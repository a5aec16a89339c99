"""Conversation orchestrator: one user message in, one validated commit (or none) out."""

from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..domain.history import IMPORT_VERSION_MESSAGE, HistoryEntry
from ..domain.patches import PatchOperation, apply_patches, parse_patch_list
from ..domain.projects import ChatMessage
from ..domain.resume_schema import validate_resume_document
from ..errors import (
    CredentialMissingError,
    CVAssistantError,
    PatchError,
    StorageError,
    TurnInProgressError,
    UpstreamError,
    ValidationError,
)
from ..providers import ChatProvider, GenerationConfig, Message
from ..storage.project_store import ProjectStore
from .observability import TurnObserver
from .prompts import EXTRACTION_PROMPT, build_job_match_prompt, build_patch_prompt
from .replies import JobMatchResult, parse_job_match_reply, parse_json_object, parse_patch_reply

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[str, str], ChatProvider]

MIN_JOB_DESCRIPTION_LENGTH = 50
MAX_JOB_DESCRIPTION_LENGTH = 10_000


class TurnState(str, Enum):
    IDLE = "idle"
    SENDING = "sending"
    SUCCESS = "success"
    FAILED = "failed"


@dataclass
class TurnResult:
    """Outcome of one send-message call, returned instead of raised."""

    state: TurnState
    reply: str = ""
    messages: List[ChatMessage] = field(default_factory=list)
    patches: List[PatchOperation] = field(default_factory=list)
    history_entry: Optional[HistoryEntry] = None
    document: Optional[Dict[str, Any]] = None
    error: Optional[CVAssistantError] = None

    @property
    def success(self) -> bool:
        return self.state == TurnState.SUCCESS

    @property
    def applied(self) -> bool:
        return self.history_entry is not None


class ConversationOrchestrator:
    """Turns chat messages into patch batches committed to project history.

    Calls are serialized per project with a plain state flag: a second
    ``send_message`` while one is in flight is rejected, not queued.
    """

    def __init__(
        self,
        projects: ProjectStore,
        provider_factory: ProviderFactory,
        generation: Optional[GenerationConfig] = None,
        observer: Optional[TurnObserver] = None,
        timeout_seconds: Optional[float] = None,
    ) -> None:
        self.projects = projects
        self.provider_factory = provider_factory
        self.generation = generation or GenerationConfig()
        self.observer = observer or TurnObserver()
        self.timeout_seconds = timeout_seconds
        self._states: Dict[str, TurnState] = {}

    def state(self, project_id: str) -> TurnState:
        return self._states.get(project_id, TurnState.IDLE)

    # -- chat turn -----------------------------------------------------------

    async def send_message(
        self,
        project_id: str,
        message: str,
        credential: Optional[str],
        model: str,
    ) -> TurnResult:
        """Run one conversational turn for *project_id*.

        Failures never propagate: they come back as a failed
        :class:`TurnResult` and, once the turn has started, as a readable
        line in the transcript.
        """
        if not message or not message.strip():
            return TurnResult(state=TurnState.FAILED, error=ValidationError("Message must not be empty"))
        if self.state(project_id) == TurnState.SENDING:
            return TurnResult(
                state=TurnState.FAILED,
                error=TurnInProgressError("A message is already being processed for this project"),
            )

        self._states[project_id] = TurnState.SENDING
        try:
            result = await self._run_turn(project_id, message, credential, model)
        finally:
            self._states[project_id] = TurnState.IDLE
        return result

    async def _run_turn(self, project_id: str, message: str, credential: Optional[str], model: str) -> TurnResult:
        try:
            document = await self.projects.load_document(project_id)
        except CVAssistantError as e:
            self.observer.log_error(e.code, e.message, {"project_id": project_id})
            return TurnResult(state=TurnState.FAILED, error=e)

        transcript = [ChatMessage.user(message)]
        result = TurnResult(state=TurnState.FAILED, document=document)

        try:
            reply = await self._request_patches(project_id, document, message, credential, model)
        except (CredentialMissingError, UpstreamError) as e:
            self.observer.log_error(e.code, e.message, {"project_id": project_id})
            transcript.append(ChatMessage.assistant(f"Sorry, I encountered an error: {e.message}"))
            result.error = e
            return await self._record(project_id, transcript, result)

        transcript.append(ChatMessage.assistant(reply.message))
        result.reply = reply.message

        try:
            patches = parse_patch_list([] if reply.patches is None else reply.patches)
            result.patches = patches
            if patches:
                result.history_entry, result.document = await self._apply_and_commit(
                    project_id, document, patches, message
                )
        except (PatchError, ValidationError) as e:
            self.observer.log_error(e.code, e.message, {"project_id": project_id})
            transcript.append(ChatMessage.system(f"The requested change could not be applied: {e.message}"))
            result.error = e
            return await self._record(project_id, transcript, result)
        except StorageError as e:
            self.observer.log_error(e.code, e.message, {"project_id": project_id})
            transcript.append(ChatMessage.system(f"The change could not be saved: {e.message}"))
            result.error = e
            return await self._record(project_id, transcript, result)

        result.state = TurnState.SUCCESS
        return await self._record(project_id, transcript, result)

    async def _request_patches(
        self,
        project_id: str,
        document: Dict[str, Any],
        message: str,
        credential: Optional[str],
        model: str,
    ):
        text = await self._complete(project_id, build_patch_prompt(document), message, credential, model)
        return parse_patch_reply(text)

    async def _apply_and_commit(
        self,
        project_id: str,
        document: Dict[str, Any],
        patches: List[PatchOperation],
        message: str,
    ):
        start = time.perf_counter()
        patched = apply_patches(document, patches)
        self.observer.log_patch_batch(project_id, patched.applied_count, (time.perf_counter() - start) * 1000)

        checked = validate_resume_document(patched.document)
        if not checked.is_valid:
            raise ValidationError(
                "The updated resume failed validation: " + "; ".join(checked.errors),
                checked.errors,
            )

        # The user's request, not the model's reply, describes the version.
        entry = await self.projects.history(project_id).commit(patched.document, message)
        self.observer.log_commit(project_id, entry.timestamp, message)
        return entry, patched.document

    async def _record(self, project_id: str, transcript: List[ChatMessage], result: TurnResult) -> TurnResult:
        try:
            await self.projects.append_messages(project_id, transcript)
        except StorageError as e:
            self.observer.log_error(e.code, e.message, {"project_id": project_id})
            result.state = TurnState.FAILED
            result.error = result.error or e
        result.messages = transcript
        return result

    async def _complete(
        self,
        project_id: str,
        system_prompt: str,
        user_text: str,
        credential: Optional[str],
        model: str,
    ) -> str:
        if not credential:
            raise CredentialMissingError("API key is missing. Please provide it to continue.")

        provider = self.provider_factory(model, credential)
        config = GenerationConfig(
            system_prompt=system_prompt,
            max_tokens=self.generation.max_tokens,
            temperature=self.generation.temperature,
            json_mode=True,
        )
        start = time.perf_counter()
        try:
            call = provider.generate([Message.user(user_text)], config)
            if self.timeout_seconds:
                response = await self._wait(call)
            else:
                response = await call
        except CVAssistantError:
            self.observer.log_llm_request(project_id, model, (time.perf_counter() - start) * 1000, success=False)
            raise
        except Exception as e:
            self.observer.log_llm_request(project_id, model, (time.perf_counter() - start) * 1000, success=False)
            raise UpstreamError(f"Failed to communicate with the completion service: {e}") from e

        tokens = (response.usage or {}).get("total_tokens")
        self.observer.log_llm_request(project_id, model, (time.perf_counter() - start) * 1000, tokens=tokens)
        return response.text

    async def _wait(self, call):
        """Await *call* for at most ``timeout_seconds``; a late reply is discarded."""
        task = asyncio.ensure_future(call)
        done, _ = await asyncio.wait({task}, timeout=self.timeout_seconds)
        if not done:
            task.cancel()
            raise UpstreamError(f"The completion service did not answer within {self.timeout_seconds:g}s")
        return task.result()

    # -- one-shot requests ---------------------------------------------------

    async def analyze_job_description(
        self,
        project_id: str,
        job_description: str,
        credential: Optional[str],
        model: str,
    ) -> JobMatchResult:
        """Compare the project's document with a job description."""
        text = (job_description or "").strip()
        if len(text) < MIN_JOB_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Job description is too short. Please provide at least {MIN_JOB_DESCRIPTION_LENGTH} characters."
            )
        if len(text) > MAX_JOB_DESCRIPTION_LENGTH:
            raise ValidationError(
                f"Job description is too long. Please keep it under {MAX_JOB_DESCRIPTION_LENGTH:,} characters."
            )
        document = await self.projects.load_document(project_id)
        reply = await self._complete(project_id, build_job_match_prompt(document), text, credential, model)
        return parse_job_match_reply(reply)

    async def extract_resume(self, text: str, credential: Optional[str], model: str) -> Dict[str, Any]:
        """Turn raw resume text into a document for the user to confirm.

        The result is validated but not committed; pass it to
        :meth:`import_document` once accepted.
        """
        if not text or not text.strip():
            raise ValidationError("Resume text must not be empty")
        reply = await self._complete("extract", EXTRACTION_PROMPT, text, credential, model)
        document = parse_json_object(reply)
        checked = validate_resume_document(document)
        if not checked.is_valid:
            raise ValidationError("Extracted resume data is incomplete", checked.errors)
        return document

    async def import_document(self, project_id: str, raw: Any) -> HistoryEntry:
        """Replace the whole document from literal JSON text (or a decoded mapping)."""
        if isinstance(raw, (str, bytes)):
            try:
                document = json.loads(raw)
            except ValueError as e:
                raise ValidationError(f"Invalid JSON: {e}", [f"Invalid JSON: {e}"]) from e
        else:
            document = raw

        checked = validate_resume_document(document)
        if not checked.is_valid:
            raise ValidationError(checked.errors[0], checked.errors)

        entry = await self.projects.history(project_id).commit(document, IMPORT_VERSION_MESSAGE)
        await self.projects.touch(project_id)
        self.observer.log_commit(project_id, entry.timestamp, IMPORT_VERSION_MESSAGE)
        return entry
