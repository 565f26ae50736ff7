"""
genbridge - Generation Request Adapter and Job Orchestrator

Lets an image-editing host request AI-generated images from interchangeable
backends (Gemini, Gemini-compatible proxies, chat-completions resellers, a
unified image endpoint and a local ComfyUI graph executor) and get back a
single image, without knowing which backend is configured.
"""

__version__ = "0.1.0"

# Import main components for easier access
from genbridge.core.cancellation import CancellationToken
from genbridge.core.types import (
    GenerationMode,
    GenerationResult,
    NormalizedGenerationRequest,
    ProtocolFamily,
    ProviderProfile,
    ResolutionTier,
)
from genbridge.pipeline.debug_capture import DebugCapture, FileDebugCapture
from genbridge.pipeline.orchestrator import GenerationHandle, GenerationOrchestrator
