"""
UI-facing controller: submission, polling and retry for one screen.

Only the most recent submission may change the displayed state; a loop
left over from an earlier submission finishes quietly.
"""
import asyncio
from typing import Callable, Dict, Optional, Tuple

from core.errors import ApiClientError
from core.logger import logger
from services.session_poller import PollOutcome, PollState, SessionPoller


Listener = Callable[[PollState, "AnalysisWorkflow"], None]


class AnalysisWorkflow:
    """Holds the current analysis state and the inputs needed to retry."""

    def __init__(self, client, poller: Optional[SessionPoller] = None, on_transition: Optional[Listener] = None):
        self.client = client
        self.poller = poller or SessionPoller(client)
        self.on_transition = on_transition

        self.state = PollState.IDLE
        self.session_id: Optional[str] = None
        self.outcome: Optional[PollOutcome] = None
        self.error: Optional[str] = None

        self._file: Optional[Tuple[str, bytes, Optional[str]]] = None
        self._url: Optional[str] = None
        self._generation = 0
        self._active_polls: Dict[str, asyncio.Future] = {}

    # ------------------------------------------------------------------
    # state bookkeeping
    # ------------------------------------------------------------------

    def _begin(self) -> int:
        self._generation += 1
        self.outcome = None
        self.error = None
        return self._generation

    def _transition(self, generation: int, state: PollState, **changes) -> bool:
        if generation != self._generation:
            logger.debug(f"Ignoring {state.value} transition from an abandoned submission")
            return False
        self.state = state
        for name, value in changes.items():
            setattr(self, name, value)
        if self.on_transition:
            self.on_transition(state, self)
        return True

    def _fail(self, generation: int, message: str) -> PollOutcome:
        outcome = PollOutcome(state=PollState.ERROR, session_id=self.session_id or "", error=message)
        self._transition(generation, PollState.ERROR, outcome=outcome, error=message)
        return outcome

    def _forget_poll(self, session_id: str, task: asyncio.Future) -> None:
        if self._active_polls.get(session_id) is task:
            del self._active_polls[session_id]

    async def _poll(self, session_id: str) -> PollOutcome:
        """Join the running loop for this session, or start one."""
        task = self._active_polls.get(session_id)
        if task is None or task.done():
            task = asyncio.ensure_future(self.poller.poll(session_id))
            self._active_polls[session_id] = task
            task.add_done_callback(lambda t: self._forget_poll(session_id, t))
        return await asyncio.shield(task)

    async def _track(self, generation: int, session_id: str) -> PollOutcome:
        self._transition(generation, PollState.PROCESSING, session_id=session_id)
        outcome = await self._poll(session_id)
        self._transition(generation, outcome.state, outcome=outcome, error=outcome.error)
        return outcome

    # ------------------------------------------------------------------
    # user actions
    # ------------------------------------------------------------------

    async def submit_file(self, filename: str, content: bytes, content_type: Optional[str] = None) -> PollOutcome:
        self._file, self._url = (filename, content, content_type), None
        generation = self._begin()
        self._transition(generation, PollState.UPLOADING)
        try:
            session_id = await self.client.upload_image(filename, content, content_type)
        except ApiClientError as e:
            logger.error(f"Upload failed: {e}")
            return self._fail(generation, str(e))
        return await self._track(generation, session_id)

    async def submit_url(self, url: str) -> PollOutcome:
        self._file, self._url = None, url
        generation = self._begin()
        self._transition(generation, PollState.UPLOADING)
        try:
            session_id = await self.client.upload_url(url)
        except ApiClientError as e:
            logger.error(f"URL submission failed: {e}")
            return self._fail(generation, str(e))
        return await self._track(generation, session_id)

    async def check_session(self, session_id: str) -> PollOutcome:
        """Resume tracking an already created session."""
        generation = self._begin()
        return await self._track(generation, session_id)

    async def retry(self) -> PollOutcome:
        """Re-submit the held file or URL, else re-check the last session."""
        if self._file is not None:
            return await self.submit_file(*self._file)
        if self._url is not None:
            return await self.submit_url(self._url)
        if self.session_id:
            return await self.check_session(self.session_id)
        raise ValueError("Nothing to retry")
