"""
Session status polling.

Drives one session from submission to a terminal upstream status with a
fixed interval and a hard attempt ceiling (no backoff). The sleep function
is injected so tests can run the whole budget without waiting.
"""
import asyncio
import enum
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import config
from core.errors import ApiClientError, PollingTimeoutError, ProxyError
from core.logger import logger
from core.result_formatter import format_analysis_results
from core.schemas import (
    IN_FLIGHT_STATUSES,
    SUCCESS_STATUSES,
    AnalysisResult,
    SessionStatus,
    parse_status,
)


Sleep = Callable[[float], Awaitable[Any]]

PROCESSING_FAILED_MESSAGE = "Image processing failed"


class PollState(str, enum.Enum):
    """UI-facing projection of a session's progress."""
    IDLE = "idle"
    UPLOADING = "uploading"
    PROCESSING = "processing"
    RESULTS = "results"
    ERROR = "error"


@dataclass
class PollOutcome:
    state: PollState
    session_id: str
    status: Optional[str] = None
    attempts: int = 0
    session_info: Optional[Dict[str, Any]] = None
    results: List[AnalysisResult] = field(default_factory=list)
    error: Optional[str] = None
    timed_out: bool = False

    @property
    def no_faces(self) -> bool:
        return parse_status(self.status) == SessionStatus.NO_FACES_FOUND


class SessionPoller:
    """
    Poll a session's status until it is terminal or the budget runs out.

    `client` needs `get_session_status(id)` returning `{"status": ...}` and
    `get_session_info(id)` returning the session JSON; both ProoflyClient
    and UpstreamClient fit.
    """

    def __init__(
        self,
        client,
        interval: float = config.POLL_INTERVAL_SECONDS,
        max_attempts: int = config.POLL_MAX_ATTEMPTS,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.client = client
        self.interval = interval
        self.max_attempts = max_attempts
        self.sleep = sleep

    async def wait_for_terminal_status(self, session_id: str) -> PollOutcome:
        """Status loop only. Raises PollingTimeoutError on budget exhaustion."""
        status = SessionStatus.PROCESSING.value
        attempts = 0
        while parse_status(status) in IN_FLIGHT_STATUSES and attempts < self.max_attempts:
            await self.sleep(self.interval)
            response = await self.client.get_session_status(session_id)
            status = response.get("status") if isinstance(response, dict) else None
            attempts += 1
            logger.debug(f"Session {session_id} status after attempt {attempts}: {status}")

        if parse_status(status) in IN_FLIGHT_STATUSES:
            raise PollingTimeoutError(attempts)
        return PollOutcome(state=PollState.PROCESSING, session_id=session_id, status=status, attempts=attempts)

    async def poll(self, session_id: str) -> PollOutcome:
        """Run the state machine to `results` or `error`. Never raises for client failures."""
        try:
            outcome = await self.wait_for_terminal_status(session_id)
        except PollingTimeoutError as e:
            logger.warning(f"Session {session_id}: {e} after {e.attempts} attempts")
            return PollOutcome(
                state=PollState.ERROR,
                session_id=session_id,
                attempts=e.attempts,
                error=str(e),
                timed_out=True,
            )
        except (ApiClientError, ProxyError) as e:
            logger.error(f"Session {session_id}: status check failed: {e}")
            return PollOutcome(state=PollState.ERROR, session_id=session_id, error=f"Error: {e}")

        status = parse_status(outcome.status)
        if status in SUCCESS_STATUSES or status == SessionStatus.NO_FACES_FOUND:
            try:
                info = await self.client.get_session_info(session_id)
                outcome.results = format_analysis_results(info)
            except (ApiClientError, ProxyError) as e:
                logger.error(f"Session {session_id}: could not load results: {e}")
                outcome.state = PollState.ERROR
                outcome.error = f"Error: {e}"
                return outcome
            outcome.session_info = info
            outcome.state = PollState.RESULTS
            if status == SessionStatus.NO_FACES_FOUND:
                logger.info(f"Session {session_id}: no faces detected")
            else:
                logger.info(f"Session {session_id}: analysis completed, {len(outcome.results)} face(s)")
            return outcome

        outcome.state = PollState.ERROR
        if status == SessionStatus.FAILED:
            outcome.error = PROCESSING_FAILED_MESSAGE
        else:
            outcome.error = "Unexpected session status"
        logger.warning(f"Session {session_id} ended with status {outcome.status!r}")
        return outcome
