"""
Tests for graph-executor job submission and polling.
"""

import threading
import time

import pytest
import requests
from unittest.mock import patch, MagicMock

from genbridge.core.cancellation import CancellationToken
from genbridge.core.error_handler import (
    GenerationCancelledError,
    GenerationTimeoutError,
    ProtocolError,
    TransportError,
    UpstreamRefusal,
)
from genbridge.core.types import PendingJob
from genbridge.graph.poller import JobPoller, execution_error_message, has_image_outputs

BASE_URL = "http://127.0.0.1:8188"

COMPLETED_ENTRY = {
    "outputs": {
        "9": {"images": [{"filename": "GenBridge_ZImage_00001_.png", "subfolder": "", "type": "output"}]}
    },
    "status": {"status_str": "success", "completed": True, "messages": []},
}

FAILED_ENTRY = {
    "outputs": {},
    "status": {
        "status_str": "error",
        "completed": False,
        "messages": [
            ["execution_start", {"prompt_id": "42"}],
            ["execution_error", {"node_type": "UNETLoader",
                                 "exception_message": "Model file not found\n"}],
        ],
    },
}


def history_response(data, status_code=200):
    response = MagicMock()
    response.status_code = status_code
    response.ok = status_code < 400
    response.text = str(data)
    response.json.return_value = data
    return response


class TestHistoryEntries:

    def test_has_image_outputs(self):
        assert has_image_outputs(COMPLETED_ENTRY)
        assert not has_image_outputs({"outputs": {}})
        assert not has_image_outputs({"outputs": {"9": {"text": ["x"]}}})
        assert not has_image_outputs({})

    def test_execution_error_message(self):
        assert execution_error_message(FAILED_ENTRY) == "UNETLoader: Model file not found"
        assert execution_error_message(COMPLETED_ENTRY) is None
        assert execution_error_message({"status": {"status_str": "error"}}) == \
            "Graph executor reported an execution error"


class TestJobSubmit:

    def setup_method(self):
        self.poller = JobPoller(interval=0, max_polls=5, request_timeout=5, poll_timeout=5)

    @patch('requests.post')
    def test_submit(self, mock_post):
        mock_post.return_value = history_response({"prompt_id": "42", "number": 1, "node_errors": {}})

        job = self.poller.submit({"prompt": {}, "client_id": "abc"}, f"{BASE_URL}/prompt",
                                 {"Content-Type": "application/json"})

        assert job.job_id == "42"
        assert job.poll_count == 0
        args, kwargs = mock_post.call_args
        assert args[0] == f"{BASE_URL}/prompt"
        assert kwargs["json"] == {"prompt": {}, "client_id": "abc"}

    @patch('requests.post')
    def test_submit_without_prompt_id(self, mock_post):
        mock_post.return_value = history_response({"number": 1})
        with pytest.raises(ProtocolError):
            self.poller.submit({"prompt": {}}, f"{BASE_URL}/prompt")

    @patch('requests.post')
    def test_submit_non_json_response(self, mock_post):
        response = history_response(None)
        response.text = "<html>proxy error</html>"
        response.json.side_effect = ValueError("not json")
        mock_post.return_value = response

        with pytest.raises(ProtocolError) as excinfo:
            self.poller.submit({"prompt": {}}, f"{BASE_URL}/prompt")

        assert excinfo.value.family == "graph-executor"
        assert excinfo.value.response == "<html>proxy error</html>"

    @patch('requests.post')
    def test_submit_rejected(self, mock_post):
        mock_post.return_value = history_response({"error": "invalid prompt", "node_errors": {}}, status_code=400)
        with pytest.raises(TransportError) as excinfo:
            self.poller.submit({"prompt": {}}, f"{BASE_URL}/prompt")
        assert excinfo.value.status_code == 400


class TestJobPoll:

    def setup_method(self):
        self.poller = JobPoller(interval=0, max_polls=10, request_timeout=5, poll_timeout=5)
        self.job = PendingJob(job_id="42")

    @patch('requests.post')
    @patch('requests.get')
    def test_completes_on_fourth_poll(self, mock_get, mock_post):
        mock_get.side_effect = [
            history_response({}),
            history_response({}),
            history_response({}),
            history_response({"42": COMPLETED_ENTRY}),
        ]

        entry = self.poller.poll(self.job, BASE_URL)

        assert entry == COMPLETED_ENTRY
        assert self.job.poll_count == 4
        assert mock_get.call_count == 4
        assert mock_get.call_args[0][0] == f"{BASE_URL}/history/42"
        mock_post.assert_not_called()

    @patch('requests.get')
    def test_completes_on_first_poll(self, mock_get):
        mock_get.return_value = history_response({"42": COMPLETED_ENTRY})

        self.poller.poll(self.job, BASE_URL + "/")

        assert self.job.poll_count == 1

    @patch('requests.post')
    @patch('requests.get')
    def test_poll_budget_exhausted(self, mock_get, mock_post):
        poller = JobPoller(interval=0, max_polls=3, request_timeout=5, poll_timeout=5)
        mock_get.return_value = history_response({})

        with pytest.raises(GenerationTimeoutError) as excinfo:
            poller.poll(self.job, BASE_URL)

        assert excinfo.value.polls == 3
        assert excinfo.value.job_id == "42"
        assert excinfo.value.kind == "timeout"
        assert mock_get.call_count == 3
        mock_post.assert_called_once_with(f"{BASE_URL}/queue", json={"delete": ["42"]}, timeout=5)

    @patch('requests.post')
    @patch('requests.get')
    def test_cleanup_failure_still_times_out(self, mock_get, mock_post):
        poller = JobPoller(interval=0, max_polls=1, request_timeout=5, poll_timeout=5)
        mock_get.return_value = history_response({})
        mock_post.side_effect = requests.exceptions.ConnectionError("gone")

        with pytest.raises(GenerationTimeoutError):
            poller.poll(self.job, BASE_URL)

    @patch('requests.post')
    @patch('requests.get')
    def test_deadline(self, mock_get, mock_post):
        poller = JobPoller(interval=0, max_polls=10, request_timeout=5, poll_timeout=5, deadline=0)

        with pytest.raises(GenerationTimeoutError) as excinfo:
            poller.poll(self.job, BASE_URL)

        assert excinfo.value.polls == 0
        mock_get.assert_not_called()

    @patch('requests.post')
    @patch('requests.get')
    def test_history_requests_use_poll_timeout(self, mock_get, mock_post):
        poller = JobPoller(interval=0, max_polls=2, request_timeout=300, poll_timeout=7)
        mock_get.return_value = history_response({})

        with pytest.raises(GenerationTimeoutError):
            poller.poll(self.job, BASE_URL)

        for call in mock_get.call_args_list:
            assert call[1]["timeout"] == 7
        assert mock_post.call_args[1]["timeout"] == 7

    @patch('requests.post')
    def test_submit_uses_request_timeout(self, mock_post):
        poller = JobPoller(interval=0, max_polls=2, request_timeout=300, poll_timeout=7)
        mock_post.return_value = history_response({"prompt_id": "42"})

        poller.submit({"prompt": {}}, f"{BASE_URL}/prompt")

        assert mock_post.call_args[1]["timeout"] == 300

    @patch('requests.get')
    def test_transient_failures_continue(self, mock_get):
        invalid_json = history_response(None)
        invalid_json.json.side_effect = ValueError("not json")
        mock_get.side_effect = [
            requests.exceptions.ConnectionError("refused"),
            requests.exceptions.Timeout("slow"),
            history_response("busy", status_code=503),
            invalid_json,
            history_response({"42": COMPLETED_ENTRY}),
        ]

        entry = self.poller.poll(self.job, BASE_URL)

        assert entry == COMPLETED_ENTRY
        assert self.job.poll_count == 5

    @patch('requests.get')
    def test_client_error_stops(self, mock_get):
        mock_get.return_value = history_response("not found", status_code=404)

        with pytest.raises(TransportError) as excinfo:
            self.poller.poll(self.job, BASE_URL)

        assert excinfo.value.status_code == 404
        assert self.job.poll_count == 1

    @patch('requests.get')
    def test_execution_error(self, mock_get):
        mock_get.return_value = history_response({"42": FAILED_ENTRY})

        with pytest.raises(UpstreamRefusal, match="Model file not found"):
            self.poller.poll(self.job, BASE_URL)

    @patch('requests.post')
    @patch('requests.get')
    def test_cancelled_before_poll(self, mock_get, mock_post):
        token = CancellationToken()
        token.cancel("User cancelled")

        with pytest.raises(GenerationCancelledError, match="User cancelled"):
            self.poller.poll(self.job, BASE_URL, cancel_token=token)

        mock_get.assert_not_called()
        mock_post.assert_called_once_with(f"{BASE_URL}/queue", json={"delete": ["42"]}, timeout=5)

    @patch('requests.post')
    @patch('requests.get')
    def test_cancel_interrupts_wait(self, mock_get, mock_post):
        poller = JobPoller(interval=30, max_polls=10, request_timeout=5, poll_timeout=5)
        token = CancellationToken()
        timer = threading.Timer(0.05, token.cancel)
        timer.start()

        started = time.monotonic()
        with pytest.raises(GenerationCancelledError):
            poller.poll(self.job, BASE_URL, cancel_token=token)

        assert time.monotonic() - started < 5
        mock_get.assert_not_called()
        timer.join()
