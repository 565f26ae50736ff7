"""
Request payload builders, one per protocol family.

Each builder turns a NormalizedGenerationRequest and a ProviderProfile into a
(body, headers) pair. The families differ enough that they are kept as
independent functions selected from PAYLOAD_BUILDERS rather than subclasses.

Shared rule for image-edit requests carrying a source and/or reference layer:
images are always sent Reference first, then Source, and a role instruction
naming each image precedes the user prompt.
"""

import uuid
from typing import Any, Callable, Dict, List, Optional, Tuple

from genbridge.core.constants import RESOLUTION_VARIANT_MODEL, NO_LOW_TIER_MODEL_PREFIXES
from genbridge.core.logging_config import get_logger
from genbridge.core.types import (
    NormalizedGenerationRequest,
    ProviderProfile,
    ProtocolFamily,
    ResolutionTier,
)
from genbridge.core.utils import encode_image_to_base64, sniff_mime_type, to_data_url
from genbridge.providers.classifier import ProviderEndpoint, classify_provider, is_openrouter

# Initialize logger
logger = get_logger(__name__)

Payload = Tuple[Dict[str, Any], Dict[str, str]]

REFERENCE_ROLE = "Reference"
SOURCE_ROLE = "Source"

ROLE_DESCRIPTIONS = {
    REFERENCE_ROLE: "Image {index} is the Reference Layer (use this for style/content reference).",
    SOURCE_ROLE: "Image {index} is the Source Layer (the content to be modified).",
}

# Natural-language composition clauses for the unified image endpoint
ASPECT_RATIO_DESCRIPTIONS = {
    "1:1": "square composition (1:1)",
    "2:3": "portrait composition (2:3)",
    "3:2": "landscape composition (3:2)",
    "3:4": "portrait composition (3:4)",
    "4:3": "landscape composition (4:3)",
    "4:5": "portrait composition (4:5)",
    "5:4": "landscape composition (5:4)",
    "9:16": "tall vertical composition (9:16)",
    "16:9": "widescreen landscape composition (16:9)",
    "21:9": "ultra-wide cinematic composition (21:9)",
}

RESOLUTION_MODEL_SUFFIXES = {
    ResolutionTier.MID: "-2k",
    ResolutionTier.HIGH: "-4k",
}


def ordered_edit_images(request: NormalizedGenerationRequest) -> List[Tuple[str, bytes]]:
    """
    The multi-image edit layers in transmission order.

    Args:
        request (NormalizedGenerationRequest): The request

    Returns:
        List[Tuple[str, bytes]]: (role, image bytes) pairs, Reference before Source
    """
    if not request.is_multi_image:
        return []
    images = []
    if request.reference_image is not None:
        images.append((REFERENCE_ROLE, request.reference_image))
    if request.source_image is not None:
        images.append((SOURCE_ROLE, request.source_image))
    return images


def build_role_instruction(roles: List[str]) -> str:
    """
    Describe the role of each attached image, numbered from 1.

    Args:
        roles (List[str]): Roles in transmission order

    Returns:
        str: One sentence per image
    """
    return " ".join(
        ROLE_DESCRIPTIONS[role].format(index=index)
        for index, role in enumerate(roles, start=1)
    )


def _inline_part(image: bytes) -> Dict[str, Any]:
    return {
        "inlineData": {
            "mimeType": sniff_mime_type(image),
            "data": encode_image_to_base64(image),
        }
    }


def _image_url_part(image: bytes) -> Dict[str, Any]:
    return {"type": "image_url", "image_url": {"url": to_data_url(image)}}


def build_gemini_payload(request: NormalizedGenerationRequest, profile: ProviderProfile,
                         family: ProtocolFamily = ProtocolFamily.GEMINI_COMPATIBLE) -> Payload:
    """
    Build a generateContent payload for the official Gemini API or a
    Gemini-compatible proxy.

    Args:
        request (NormalizedGenerationRequest): The request
        profile (ProviderProfile): The provider profile
        family (ProtocolFamily): gemini-native or gemini-compatible

    Returns:
        Payload: (body, headers)
    """
    parts = []
    edit_images = ordered_edit_images(request)

    if edit_images:
        instruction = build_role_instruction([role for role, _ in edit_images])
        parts.append({"text": f"System Instruction: {instruction}\n\nUser Prompt: {request.prompt}"})
        parts.extend(_inline_part(image) for _, image in edit_images)
    elif request.single_edit_image is not None:
        parts.append(_inline_part(request.single_edit_image))
        parts.append({"text": request.prompt})
    else:
        parts.append({"text": request.prompt})

    body = {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {
            "responseModalities": ["TEXT", "IMAGE"],
            "imageConfig": {
                "aspectRatio": request.aspect_ratio,
                "imageSize": request.resolution_tier.size_hint,
            },
        },
    }

    # The search tool is a top-level field of the request, beside generationConfig
    if request.web_search_enabled:
        body["tools"] = [{"google_search": {}}]

    return body, ProviderEndpoint(profile, family).headers()


def resolve_chat_model(model: str, tier: ResolutionTier) -> str:
    """
    Select the resolution-specific variant of the default chat model.

    Only the known default model has -2k / -4k variants; any other model is
    returned unchanged.

    Args:
        model (str): Configured model
        tier (ResolutionTier): Requested tier

    Returns:
        str: Model identifier to send
    """
    if model == RESOLUTION_VARIANT_MODEL and tier in RESOLUTION_MODEL_SUFFIXES:
        return model + RESOLUTION_MODEL_SUFFIXES[tier]
    return model


def build_chat_completions_payload(request: NormalizedGenerationRequest, profile: ProviderProfile,
                                   family: ProtocolFamily = ProtocolFamily.CHAT_COMPLETIONS) -> Payload:
    """
    Build an OpenAI-style chat completions payload.

    Resolution is expressed by model selection and the aspect ratio by a
    trailing "Aspect Ratio:" line in the prompt text. OpenRouter also
    receives both in an image_config block.
    """
    endpoint = ProviderEndpoint(profile, family)
    model = resolve_chat_model(endpoint.model, request.resolution_tier)
    if model != endpoint.model:
        logger.info(f"Switched model to {model} for resolution {request.resolution_tier.size_hint}")

    prompt_text = request.prompt
    if request.aspect_ratio and request.aspect_ratio != "1:1":
        prompt_text += f"\nAspect Ratio: {request.aspect_ratio}"

    content = []
    edit_images = ordered_edit_images(request)

    if edit_images:
        annotations = "\n".join(
            f"[Attached Image {index}: {role} Layer]"
            for index, (role, _) in enumerate(edit_images, start=1)
        )
        content.append({"type": "text", "text": f"{annotations}\n\n{prompt_text}"})
        content.extend(_image_url_part(image) for _, image in edit_images)
    elif request.single_edit_image is not None:
        content.append(_image_url_part(request.single_edit_image))
        content.append({"type": "text", "text": prompt_text})
    else:
        content.append({"type": "text", "text": prompt_text})

    if request.web_search_enabled:
        logger.debug("Web search is not supported by chat-completions providers, ignoring")

    body = {
        "model": model,
        "messages": [{"role": "user", "content": content}],
        "stream": False,
    }
    if is_openrouter(profile):
        body["modalities"] = ["image", "text"]
        body["image_config"] = {
            "aspect_ratio": request.aspect_ratio,
            "image_size": request.resolution_tier.size_hint,
        }

    return body, endpoint.headers()


def describe_aspect_ratio(aspect_ratio: str) -> str:
    """
    Natural-language description of an aspect ratio.

    Args:
        aspect_ratio (str): Ratio such as "16:9"

    Returns:
        str: Composition clause
    """
    ratio = (aspect_ratio or "1:1").strip()
    return ASPECT_RATIO_DESCRIPTIONS.get(ratio, f"composition with an aspect ratio of {ratio}")


def resolve_unified_size(model: str, tier: ResolutionTier) -> str:
    """
    Size value for the unified image endpoint.

    Models that cannot render the lowest tier are moved up to mid.
    """
    if tier == ResolutionTier.LOW and model.lower().startswith(NO_LOW_TIER_MODEL_PREFIXES):
        logger.warning(f"Model {model} does not support {tier.size_hint}, using "
                       f"{ResolutionTier.MID.size_hint} instead")
        tier = ResolutionTier.MID
    return tier.size_hint


def build_unified_payload(request: NormalizedGenerationRequest, profile: ProviderProfile,
                          family: ProtocolFamily = ProtocolFamily.UNIFIED_IMAGE_ENDPOINT) -> Payload:
    """
    Build an images/generations payload for the unified image endpoint.
    """
    endpoint = ProviderEndpoint(profile, family)
    model = endpoint.model

    prompt_text = f"{request.prompt}\n\nCompose the image as a {describe_aspect_ratio(request.aspect_ratio)}."

    images = []
    edit_images = ordered_edit_images(request)
    if edit_images:
        instruction = build_role_instruction([role for role, _ in edit_images])
        prompt_text = f"{instruction}\n\n{prompt_text}"
        images = [to_data_url(image) for _, image in edit_images]
    elif request.single_edit_image is not None:
        images = [to_data_url(request.single_edit_image)]

    body = {
        "model": model,
        "prompt": prompt_text,
        "size": resolve_unified_size(model, request.resolution_tier),
        "response_format": "url",
        "sequential_image_generation": "disabled",
        "watermark": False,
    }
    if images:
        body["image"] = images

    return body, endpoint.headers()


def build_graph_payload(request: NormalizedGenerationRequest, profile: ProviderProfile,
                        family: ProtocolFamily = ProtocolFamily.GRAPH_EXECUTOR,
                        workflow_builder=None) -> Payload:
    """
    Build the graph executor submission envelope.

    Input images are uploaded to the executor while the graph is built.
    """
    from genbridge.graph.workflow_builder import GraphWorkflowBuilder

    endpoint = ProviderEndpoint(profile, family)
    builder = workflow_builder or GraphWorkflowBuilder()
    graph = builder.build(request, profile, base_url=endpoint.domain)

    body = {"prompt": graph, "client_id": uuid.uuid4().hex}
    return body, endpoint.headers()


PAYLOAD_BUILDERS: Dict[ProtocolFamily, Callable[..., Payload]] = {
    ProtocolFamily.GEMINI_NATIVE: build_gemini_payload,
    ProtocolFamily.GEMINI_COMPATIBLE: build_gemini_payload,
    ProtocolFamily.CHAT_COMPLETIONS: build_chat_completions_payload,
    ProtocolFamily.UNIFIED_IMAGE_ENDPOINT: build_unified_payload,
    ProtocolFamily.GRAPH_EXECUTOR: build_graph_payload,
}


def build_payload(request: NormalizedGenerationRequest, profile: ProviderProfile,
                  family: Optional[ProtocolFamily] = None, **kwargs) -> Payload:
    """
    Build the request body and headers for a profile's protocol family.

    Args:
        request (NormalizedGenerationRequest): The request
        profile (ProviderProfile): The provider profile
        family (ProtocolFamily, optional): Pre-computed family; classified when omitted
        **kwargs: Passed to the graph builder (workflow_builder)

    Returns:
        Payload: (body, headers)
    """
    family = family or classify_provider(profile.name, profile.base_url)
    builder = PAYLOAD_BUILDERS[family]
    if family == ProtocolFamily.GRAPH_EXECUTOR:
        return builder(request, profile, family, **kwargs)
    return builder(request, profile, family)
