import asyncio

import pytest

from core.errors import ApiClientError
from services.analysis_workflow import AnalysisWorkflow
from services.session_poller import PollState, SessionPoller

from conftest import OTHER_SESSION_ID, SESSION_ID, make_session


async def no_sleep(delay):
    pass


class FakeProoflyClient:

    def __init__(self, statuses=("completed",), upload_error=None):
        self.statuses = list(statuses)
        self.upload_error = upload_error
        self.uploads = []
        self.status_calls = 0

    async def upload_image(self, filename, content, content_type=None):
        self.uploads.append(("file", filename))
        if self.upload_error:
            raise self.upload_error
        return SESSION_ID

    async def upload_url(self, url):
        self.uploads.append(("url", url))
        if self.upload_error:
            raise self.upload_error
        return SESSION_ID

    async def get_session_status(self, session_id):
        status = self.statuses[min(self.status_calls, len(self.statuses) - 1)]
        self.status_calls += 1
        return {"status": status}

    async def get_session_info(self, session_id):
        return make_session(uuid=session_id)


def make_workflow(client, max_attempts=60):
    states = []
    workflow = AnalysisWorkflow(
        client,
        poller=SessionPoller(client, max_attempts=max_attempts, sleep=no_sleep),
        on_transition=lambda state, wf: states.append(state),
    )
    return workflow, states


class TestAnalysisWorkflow:
    """Tests for submission, tracking and retry"""

    def test_file_submission(self):
        workflow, states = make_workflow(FakeProoflyClient(["processing", "completed"]))
        outcome = asyncio.run(workflow.submit_file("photo.jpg", b"data", "image/jpeg"))
        assert outcome.state == PollState.RESULTS
        assert states == [PollState.UPLOADING, PollState.PROCESSING, PollState.RESULTS]
        assert workflow.state == PollState.RESULTS
        assert workflow.session_id == SESSION_ID
        assert len(workflow.outcome.results) == 2

    def test_upload_failure_sets_error(self):
        client = FakeProoflyClient(upload_error=ApiClientError("Error uploading image: boom"))
        workflow, states = make_workflow(client)
        outcome = asyncio.run(workflow.submit_url("https://images.example.com/a.jpg"))
        assert outcome.state == PollState.ERROR
        assert workflow.state == PollState.ERROR
        assert workflow.error == "Error uploading image: boom"
        assert states == [PollState.UPLOADING, PollState.ERROR]

    def test_retry_resubmits_url(self):
        client = FakeProoflyClient(["processing"])
        workflow, _ = make_workflow(client, max_attempts=2)

        async def scenario():
            first = await workflow.submit_url("https://images.example.com/a.jpg")
            client.statuses = ["completed"]
            client.status_calls = 0
            second = await workflow.retry()
            return first, second

        first, second = asyncio.run(scenario())
        assert first.timed_out
        assert second.state == PollState.RESULTS
        assert client.uploads == [("url", "https://images.example.com/a.jpg")] * 2

    def test_retry_rechecks_session(self):
        client = FakeProoflyClient(["completed"])
        workflow, _ = make_workflow(client)

        async def scenario():
            await workflow.check_session(OTHER_SESSION_ID)
            return await workflow.retry()

        outcome = asyncio.run(scenario())
        assert outcome.session_id == OTHER_SESSION_ID
        assert client.uploads == []

    def test_nothing_to_retry(self):
        workflow, _ = make_workflow(FakeProoflyClient())
        with pytest.raises(ValueError):
            asyncio.run(workflow.retry())

    def test_concurrent_checks_share_one_loop(self):
        client = FakeProoflyClient(["processing", "processing", "completed"])
        workflow, _ = make_workflow(client)

        async def scenario():
            return await asyncio.gather(
                workflow.check_session(SESSION_ID),
                workflow.check_session(SESSION_ID),
            )

        first, second = asyncio.run(scenario())
        assert first is second
        assert client.status_calls == 3

    def test_abandoned_submission_does_not_change_state(self):
        client = FakeProoflyClient(["completed"])
        workflow, states = make_workflow(client)
        release = asyncio.Event()

        async def slow_status(session_id):
            await release.wait()
            return {"status": "failed"}

        async def scenario():
            client.get_session_status = slow_status
            stale = asyncio.ensure_future(workflow.check_session(OTHER_SESSION_ID))
            await asyncio.sleep(0)
            del client.get_session_status
            fresh = await workflow.check_session(SESSION_ID)
            release.set()
            await stale
            return fresh

        fresh = asyncio.run(scenario())
        assert fresh.state == PollState.RESULTS
        assert workflow.state == PollState.RESULTS
        assert workflow.session_id == SESSION_ID
