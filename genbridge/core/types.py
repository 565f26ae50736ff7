"""
Data types shared across the generation pipeline.

These are value types: the orchestrator never mutates a request or profile,
and workflow graphs are deep-copied before they are modified.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Any, List, Optional

from genbridge.core.error_handler import ValidationError

# node id -> {"class_type": str, "inputs": {field: literal or [node_id, slot]}}
WorkflowGraph = Dict[str, Dict[str, Any]]


class ProtocolFamily(str, Enum):
    """Wire-protocol families a provider can be classified into."""

    GEMINI_NATIVE = "gemini-native"
    GEMINI_COMPATIBLE = "gemini-compatible"
    CHAT_COMPLETIONS = "chat-completions"
    UNIFIED_IMAGE_ENDPOINT = "unified-image-endpoint"
    GRAPH_EXECUTOR = "graph-executor"


class ResolutionTier(str, Enum):
    """Coarse megapixel budget for the generated image."""

    LOW = "low"
    MID = "mid"
    HIGH = "high"

    @property
    def size_hint(self) -> str:
        """Image size label used by the Gemini-style APIs (1K, 2K, 4K)."""
        return {"low": "1K", "mid": "2K", "high": "4K"}[self.value]

    @classmethod
    def from_label(cls, label: str) -> "ResolutionTier":
        """
        Parse a tier from either its name or its size label.

        Args:
            label (str): "low", "mid", "high", "1K", "2K" or "4K" (case-insensitive)

        Returns:
            ResolutionTier: The matching tier

        Raises:
            ValidationError: If the label is not recognised
        """
        normalized = (label or "").strip().lower()
        aliases = {"1k": cls.LOW, "2k": cls.MID, "4k": cls.HIGH}
        if normalized in aliases:
            return aliases[normalized]
        try:
            return cls(normalized)
        except ValueError:
            raise ValidationError(f"Unknown resolution tier: {label}", field="resolution_tier", value=label)


class GenerationMode(str, Enum):
    TEXT_TO_IMAGE = "text-to-image"
    IMAGE_EDIT = "image-edit"


@dataclass(frozen=True)
class ProviderProfile:
    """
    A configured image-generation provider, as supplied by the host.

    Attributes:
        name: Display name of the provider (used for classification).
        base_url: Base URL of the provider's API.
        api_key: Credential; may be empty for the local graph executor.
        model: Model identifier; empty means the family default.
    """

    name: str
    base_url: str
    api_key: str = ""
    model: str = ""

    def __repr__(self) -> str:
        return (f"ProviderProfile(name={self.name!r}, base_url={self.base_url!r}, "
                f"api_key={'***' if self.api_key else ''!r}, model={self.model!r})")


@dataclass(frozen=True)
class NormalizedGenerationRequest:
    """
    Host-agnostic description of one generation call.

    ``primary_image`` is the single-image edit input; ``source_image`` and
    ``reference_image`` are the multi-image edit inputs. The two sub-modes are
    mutually exclusive. Images are ignored outside image-edit mode.
    """

    prompt: str
    aspect_ratio: str = "1:1"
    resolution_tier: ResolutionTier = ResolutionTier.LOW
    generation_mode: GenerationMode = GenerationMode.TEXT_TO_IMAGE
    web_search_enabled: bool = False
    primary_image: Optional[bytes] = None
    source_image: Optional[bytes] = None
    reference_image: Optional[bytes] = None

    def validate(self) -> None:
        """
        Check the request invariants.

        Raises:
            ValidationError: If the request is malformed
        """
        if not isinstance(self.resolution_tier, ResolutionTier):
            raise ValidationError("resolution_tier must be a ResolutionTier",
                                  field="resolution_tier", value=self.resolution_tier)
        if not isinstance(self.generation_mode, GenerationMode):
            raise ValidationError("generation_mode must be a GenerationMode",
                                  field="generation_mode", value=self.generation_mode)
        if self.primary_image is not None and (
                self.source_image is not None or self.reference_image is not None):
            raise ValidationError(
                "primary_image cannot be combined with source_image/reference_image",
                field="primary_image"
            )
        if not self.prompt or not self.prompt.strip():
            raise ValidationError("Prompt must not be empty", field="prompt")

    @property
    def is_image_edit(self) -> bool:
        return self.generation_mode == GenerationMode.IMAGE_EDIT

    @property
    def is_multi_image(self) -> bool:
        """True for an image-edit request carrying a source and/or reference layer."""
        return self.is_image_edit and (
            self.source_image is not None or self.reference_image is not None)

    @property
    def single_edit_image(self) -> Optional[bytes]:
        """The primary image when this is a single-image edit, else None."""
        if self.is_image_edit and not self.is_multi_image:
            return self.primary_image
        return None


@dataclass
class PendingJob:
    """A job submitted to the graph executor. Lives only for one generation call."""

    job_id: str
    submitted_at: float = field(default_factory=time.monotonic)
    poll_count: int = 0


@dataclass(frozen=True)
class PreparedRequest:
    """Everything needed to dispatch a generation request."""

    url: str
    body: Dict[str, Any]
    headers: Dict[str, str]
    family: ProtocolFamily
    uploaded_files: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class GenerationResult:
    """
    The terminal value returned to the host.

    At least one of ``image_bytes`` / ``image_remote_ref`` is set.
    """

    mime_type: str
    image_bytes: Optional[bytes] = None
    image_remote_ref: Optional[str] = None
    family: Optional[ProtocolFamily] = None

    def __post_init__(self):
        if self.image_bytes is None and not self.image_remote_ref:
            raise ValueError("GenerationResult needs image_bytes or image_remote_ref")

    @property
    def extension(self) -> str:
        """File extension for the image's MIME type."""
        mime_type = (self.mime_type or "").lower()
        if "webp" in mime_type:
            return "webp"
        if "jpeg" in mime_type or "jpg" in mime_type:
            return "jpg"
        return "png"
