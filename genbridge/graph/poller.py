"""
Job submission and history polling for the local graph executor.

State machine: submitted -> polling -> completed | timed-out | cancelled.
Each poll is independent: connection errors, request timeouts, 5xx statuses
and unparseable bodies are logged and the loop continues. Only exhaustion of
the poll budget, the overall deadline, an executor-reported error, a 4xx
status or cancellation end the loop early.
"""

import time
from typing import Any, Dict, Optional

import requests

from genbridge.core.cancellation import CancellationToken
from genbridge.core.constants import (
    DEFAULT_MAX_POLLS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
)
from genbridge.core.error_handler import (
    GenerationCancelledError,
    GenerationTimeoutError,
    ProtocolError,
    TransportError,
    UpstreamRefusal,
    send_json_request,
    truncate_text,
)
from genbridge.core.logging_config import get_logger
from genbridge.core.types import PendingJob, ProtocolFamily
from genbridge.providers.classifier import normalize_base_url

# Initialize logger
logger = get_logger(__name__)

FAMILY = ProtocolFamily.GRAPH_EXECUTOR.value


def has_image_outputs(entry: Dict[str, Any]) -> bool:
    """True if a history entry lists at least one output image."""
    outputs = entry.get("outputs") if isinstance(entry, dict) else None
    if not isinstance(outputs, dict):
        return False
    return any(
        isinstance(node_output, dict) and node_output.get("images")
        for node_output in outputs.values()
    )


def execution_error_message(entry: Dict[str, Any]) -> Optional[str]:
    """
    The executor's error message if the history entry reports a failed run.

    Returns:
        Optional[str]: Error text, or None if the run has not failed
    """
    status = entry.get("status") if isinstance(entry, dict) else None
    if not isinstance(status, dict) or status.get("status_str") != "error":
        return None

    for message in status.get("messages") or []:
        if isinstance(message, (list, tuple)) and len(message) == 2 \
                and message[0] == "execution_error" and isinstance(message[1], dict):
            details = message[1]
            text = details.get("exception_message") or "Execution failed"
            node_type = details.get("node_type")
            return f"{node_type}: {text.strip()}" if node_type else text.strip()
    return "Graph executor reported an execution error"


class JobPoller:
    """
    Submits workflow graphs and waits for their outputs.

    Args:
        interval (float): Seconds to wait before each history poll
        max_polls (int): Poll budget; exhausting it raises GenerationTimeoutError
        request_timeout (float): Timeout for the submission request
        poll_timeout (float): Timeout for each history poll and the queue cleanup
        deadline (float, optional): Overall bound in seconds since submission
    """

    def __init__(self, interval: float = DEFAULT_POLL_INTERVAL, max_polls: int = DEFAULT_MAX_POLLS,
                 request_timeout: float = DEFAULT_REQUEST_TIMEOUT, poll_timeout: float = DEFAULT_POLL_TIMEOUT,
                 deadline: Optional[float] = None):
        self.interval = interval
        self.max_polls = max_polls
        self.request_timeout = request_timeout
        self.poll_timeout = poll_timeout
        self.deadline = deadline

    def submit(self, body: Dict[str, Any], url: str, headers: Optional[Dict[str, str]] = None) -> PendingJob:
        """
        Submit a graph to the executor's prompt endpoint.

        Args:
            body (Dict[str, Any]): {"prompt": graph, "client_id": id}
            url (str): Prompt endpoint URL
            headers (Dict[str, str], optional): Request headers

        Returns:
            PendingJob: The accepted job

        Raises:
            TransportError: If the submission fails or is rejected
            ProtocolError: If the response carries no job id
        """
        data = send_json_request(
            "POST", url, payload=body, headers=headers,
            timeout=self.request_timeout, error_message="Workflow submission failed",
            family=FAMILY
        )
        job_id = data.get("prompt_id") if isinstance(data, dict) else None
        if not job_id:
            raise ProtocolError(f"Submission response has no prompt_id: {truncate_text(data)}", family=FAMILY)

        logger.info(f"Workflow submitted, job id {job_id}")
        return PendingJob(job_id=str(job_id))

    def poll(self, job: PendingJob, base_url: str,
             cancel_token: Optional[CancellationToken] = None) -> Dict[str, Any]:
        """
        Poll the history endpoint until the job has output images.

        Args:
            job (PendingJob): Submitted job; poll_count is updated in place
            base_url (str): Graph executor base URL
            cancel_token (CancellationToken, optional): Interrupts the wait between polls

        Returns:
            Dict[str, Any]: The job's history entry, including "outputs"

        Raises:
            GenerationCancelledError: If cancelled
            GenerationTimeoutError: If the poll budget or deadline is exhausted
            UpstreamRefusal: If the executor reports an execution error
            TransportError: If the history endpoint answers with a 4xx status
        """
        base_url = normalize_base_url(base_url)
        history_url = f"{base_url}/history/{job.job_id}"
        token = cancel_token or CancellationToken()

        try:
            while job.poll_count < self.max_polls:
                if token.wait(self.interval):
                    token.raise_if_cancelled()
                if self._past_deadline(job):
                    break

                job.poll_count += 1
                entry = self._fetch_entry(history_url, job)
                if entry is None:
                    continue

                error_message = execution_error_message(entry)
                if error_message:
                    raise UpstreamRefusal(error_message, family=FAMILY)

                if has_image_outputs(entry):
                    logger.info(f"Job {job.job_id} completed after {job.poll_count} polls")
                    return entry

                logger.debug(f"Job {job.job_id} has no outputs yet (poll {job.poll_count})")
        except GenerationCancelledError:
            logger.info(f"Job {job.job_id} cancelled after {job.poll_count} polls")
            self._cleanup(job, base_url)
            raise

        self._cleanup(job, base_url)
        elapsed = time.monotonic() - job.submitted_at
        raise GenerationTimeoutError(
            f"Graph executor job {job.job_id} did not finish after {job.poll_count} polls "
            f"({elapsed:.0f}s)",
            job_id=job.job_id,
            polls=job.poll_count,
        )

    def _past_deadline(self, job: PendingJob) -> bool:
        if self.deadline is None:
            return False
        return time.monotonic() - job.submitted_at >= self.deadline

    def _fetch_entry(self, history_url: str, job: PendingJob) -> Optional[Dict[str, Any]]:
        """
        One history request. Returns None when the job has no entry yet or
        the request failed transiently.
        """
        try:
            response = requests.get(history_url, timeout=self.poll_timeout)
        except requests.exceptions.RequestException as e:
            logger.warning(f"History poll {job.poll_count} for job {job.job_id} failed: {e}")
            return None

        if response.status_code >= 500:
            logger.warning(f"History poll {job.poll_count} returned {response.status_code}, retrying")
            return None
        if not response.ok:
            raise TransportError(
                "History request rejected",
                status_code=response.status_code,
                response=response.text,
                endpoint=history_url,
            )

        try:
            data = response.json()
        except ValueError:
            logger.warning(f"History poll {job.poll_count} returned invalid JSON, retrying")
            return None

        if not isinstance(data, dict):
            return None
        entry = data.get(job.job_id)
        return entry if isinstance(entry, dict) else None

    def _cleanup(self, job: PendingJob, base_url: str) -> None:
        """Best-effort removal of an abandoned job from the executor queue."""
        try:
            requests.post(
                f"{base_url}/queue",
                json={"delete": [job.job_id]},
                timeout=self.poll_timeout,
            )
        except requests.exceptions.RequestException as e:
            logger.warning(f"Could not remove job {job.job_id} from the queue: {e}")
