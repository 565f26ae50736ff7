"""
Generation orchestrator.

The single entry point for hosts: classify the provider, build the payload,
dispatch it (uploading and polling for the graph executor), parse the
response and return one GenerationResult. Every failure reaches the caller as
a GenerationError carrying a kind and a message.
"""

import json
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional, Tuple

from genbridge.core.cancellation import CancellationToken
from genbridge.core.config import get_config_value
from genbridge.core.constants import (
    DEFAULT_DOWNLOAD_TIMEOUT,
    DEFAULT_GENERATION_TIMEOUT,
    DEFAULT_MAX_POLLS,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_POLL_TIMEOUT,
    DEFAULT_REQUEST_TIMEOUT,
)
from genbridge.core.error_handler import (
    GenerationBusyError,
    GenerationError,
    error_report,
    log_api_error,
    redact_url,
    send_json_request,
    validate_configuration,
)
from genbridge.core.logging_config import get_logger, truncate_for_logging
from genbridge.core.types import (
    GenerationResult,
    NormalizedGenerationRequest,
    PreparedRequest,
    ProtocolFamily,
    ProviderProfile,
)
from genbridge.core.utils import sniff_mime_type
from genbridge.graph.poller import JobPoller
from genbridge.graph.workflow_builder import GraphWorkflowBuilder
from genbridge.pipeline.debug_capture import DebugCapture
from genbridge.providers.classifier import ProviderEndpoint, classify_provider, requires_api_key
from genbridge.providers.payloads import build_payload
from genbridge.providers.responses import fetch_image, parse_response

# Initialize logger
logger = get_logger(__name__)


class GenerationHandle:
    """
    An in-flight generation started with GenerationOrchestrator.submit().

    Attributes:
        future: Resolves to the GenerationResult or raises its GenerationError.
        token: Cancellation token passed to the generation.
    """

    def __init__(self, future: Future, token: CancellationToken):
        self.future = future
        self.token = token

    def cancel(self, reason: str = "Generation cancelled") -> None:
        self.token.cancel(reason)

    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> GenerationResult:
        return self.future.result(timeout)


class GenerationOrchestrator:
    """
    Runs generation requests against any supported provider.

    The orchestrator keeps no state between calls apart from the template
    cache of its workflow builder.
    """

    def __init__(
        self,
        debug_sink: Optional[DebugCapture] = None,
        fetch_remote: bool = True,
        poller: Optional[JobPoller] = None,
        workflow_builder: Optional[GraphWorkflowBuilder] = None
    ):
        """
        Initialize the GenerationOrchestrator.

        Args:
            debug_sink: Receives raw payloads and responses when debug capture is on.
            fetch_remote: Download results that arrive only as a remote URL.
            poller: Job poller for the graph executor; built from config when omitted.
            workflow_builder: Graph builder for the graph executor; built lazily when omitted.
        """
        self.debug_sink = debug_sink
        self.fetch_remote = fetch_remote
        self.request_timeout = get_config_value("http.request_timeout", DEFAULT_REQUEST_TIMEOUT)
        self.download_timeout = get_config_value("http.download_timeout", DEFAULT_DOWNLOAD_TIMEOUT)
        self.poller = poller or JobPoller(
            interval=get_config_value("graph_executor.poll_interval", DEFAULT_POLL_INTERVAL),
            max_polls=get_config_value("graph_executor.max_polls", DEFAULT_MAX_POLLS),
            request_timeout=self.request_timeout,
            poll_timeout=get_config_value("graph_executor.poll_timeout", DEFAULT_POLL_TIMEOUT),
            deadline=get_config_value("generation.timeout", DEFAULT_GENERATION_TIMEOUT),
        )
        self._workflow_builder = workflow_builder
        self._executor: Optional[ThreadPoolExecutor] = None
        self._active: Optional[GenerationHandle] = None
        self._lock = threading.Lock()

    @property
    def workflow_builder(self) -> GraphWorkflowBuilder:
        if self._workflow_builder is None:
            self._workflow_builder = GraphWorkflowBuilder()
        return self._workflow_builder

    def validate_profile(self, profile: ProviderProfile, family: ProtocolFamily) -> None:
        """
        Reject a profile that cannot be dispatched.

        Raises:
            ConfigurationError: If the base URL, or a required API key, is missing
        """
        required = ["base_url"]
        if requires_api_key(family):
            required.append("api_key")
        validate_configuration(
            {"base_url": profile.base_url, "api_key": profile.api_key},
            required,
            component=profile.name or family.value,
        )

    def prepare(self, request: NormalizedGenerationRequest, profile: ProviderProfile,
                family: ProtocolFamily) -> PreparedRequest:
        """
        Build the request for a provider.

        For the graph executor this uploads input images as a side effect.

        Returns:
            PreparedRequest: URL, body and headers ready to send
        """
        endpoint = ProviderEndpoint(profile, family)
        uploaded = []
        if family == ProtocolFamily.GRAPH_EXECUTOR:
            body, headers = build_payload(request, profile, family, workflow_builder=self.workflow_builder)
            uploaded = list(self.workflow_builder.uploaded_files)
        else:
            body, headers = build_payload(request, profile, family)

        return PreparedRequest(
            url=endpoint.generate_url(),
            body=body,
            headers=headers,
            family=family,
            uploaded_files=uploaded,
        )

    def generate(
        self,
        request: NormalizedGenerationRequest,
        profile: ProviderProfile,
        debug_capture: bool = False,
        cancel_token: Optional[CancellationToken] = None
    ) -> GenerationResult:
        """
        Run one generation.

        Args:
            request: The normalized request.
            profile: The provider to use.
            debug_capture: Hand the raw payload, response and any error to the debug sink.
            cancel_token: Cancels the generation between steps and during polling.

        Returns:
            The generated image.

        Raises:
            GenerationError: Any failure, with kind and message.
        """
        token = cancel_token or CancellationToken()
        capture = debug_capture and self.debug_sink is not None

        try:
            request.validate()
            family = classify_provider(profile.name, profile.base_url)
            logger.info(f"Generating with {profile.name} ({family.value}), "
                        f"mode {request.generation_mode.value}, tier {request.resolution_tier.value}, "
                        f"aspect ratio {request.aspect_ratio}")
            self.validate_profile(profile, family)
            token.raise_if_cancelled()

            prepared = self.prepare(request, profile, family)
            logger.debug(f"Payload: {json.dumps(truncate_for_logging(prepared.body))}")
            if capture:
                self.debug_sink.save_payload(prepared.body, profile.name)
            token.raise_if_cancelled()

            body, base_url = self._dispatch(prepared, profile, token)
            if capture:
                self.debug_sink.save_response(body, profile.name)

            result = parse_response(body, family, base_url=base_url, download_timeout=self.download_timeout)
            if self.fetch_remote and result.image_bytes is None:
                result = self._download(result)

            logger.info(f"Generation finished: {result.mime_type}, "
                        f"{len(result.image_bytes) if result.image_bytes else 0} bytes")
            return result

        except GenerationError as e:
            log_api_error(e)
            if capture:
                raw_body = getattr(e, "response", None)
                if raw_body is not None:
                    self.debug_sink.save_response(raw_body, profile.name)
                self.debug_sink.save_log(error_report(e))
            raise
        except Exception as e:
            logger.exception(f"Unexpected error during generation: {e}")
            wrapped = GenerationError(f"Unexpected error: {e}", kind="internal")
            if capture:
                self.debug_sink.save_log(error_report(wrapped))
            raise wrapped from e

    def _dispatch(self, prepared: PreparedRequest, profile: ProviderProfile,
                  token: CancellationToken) -> Tuple[Any, Optional[str]]:
        """
        Send a prepared request.

        Returns:
            Tuple[Any, Optional[str]]: (response body, executor base URL or None)
        """
        if prepared.family == ProtocolFamily.GRAPH_EXECUTOR:
            base_url = ProviderEndpoint(profile, prepared.family).domain
            job = self.poller.submit(prepared.body, prepared.url, prepared.headers)
            entry = self.poller.poll(job, base_url, cancel_token=token)
            return entry, base_url

        logger.info(f"Sending request to {redact_url(prepared.url)}")
        body = send_json_request(
            "POST",
            prepared.url,
            payload=prepared.body,
            headers=prepared.headers,
            timeout=self.request_timeout,
            error_message=f"{profile.name} request failed",
            family=prepared.family.value,
        )
        return body, None

    def _download(self, result: GenerationResult) -> GenerationResult:
        logger.info(f"Downloading generated image from {result.image_remote_ref}")
        image_bytes = fetch_image(result.image_remote_ref, result.family, timeout=self.download_timeout)
        return GenerationResult(
            mime_type=sniff_mime_type(image_bytes, default=result.mime_type),
            image_bytes=image_bytes,
            image_remote_ref=result.image_remote_ref,
            family=result.family,
        )

    def submit(
        self,
        request: NormalizedGenerationRequest,
        profile: ProviderProfile,
        debug_capture: bool = False,
        cancel_token: Optional[CancellationToken] = None
    ) -> GenerationHandle:
        """
        Start a generation in the background.

        Only one generation may be in flight per orchestrator.

        Returns:
            GenerationHandle: Future and cancellation token for the generation

        Raises:
            GenerationBusyError: If a previous generation has not finished
        """
        with self._lock:
            if self._active is not None and not self._active.done():
                raise GenerationBusyError("A generation is already in progress")
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="genbridge")
            token = cancel_token or CancellationToken()
            future = self._executor.submit(self.generate, request, profile, debug_capture, token)
            self._active = GenerationHandle(future, token)
            return self._active

    def shutdown(self, cancel: bool = True) -> None:
        """Stop the background worker, cancelling any in-flight generation."""
        with self._lock:
            if cancel and self._active is not None:
                self._active.cancel("Orchestrator shut down")
            if self._executor is not None:
                self._executor.shutdown(wait=True)
                self._executor = None
            self._active = None


def generate(request: NormalizedGenerationRequest, profile: ProviderProfile,
             debug_capture: bool = False, debug_sink: Optional[DebugCapture] = None) -> GenerationResult:
    """Run one generation with a default orchestrator."""
    return GenerationOrchestrator(debug_sink=debug_sink).generate(request, profile, debug_capture)
