"""
Workflow graph construction for the local graph executor.

GraphWorkflowBuilder picks the text-to-image or image-edit template, works on
a deep copy of it, uploads any input images and injects the prompt, seed,
dimensions and image filenames into the relevant nodes.

Templates are looked up in the workflows directory first (text_to_image.json,
image_edit.json). A user template has its nodes located generically: the
sampler by class type, the prompt node by tracing the sampler's positive
input, and the latent-size node by class type. Its dimensions, checkpoint and
negative prompt are left as the user wrote them. When no user template exists
the built-in one is used and written to the directory as a starting point.
"""

import copy
import json
import os
import random
from typing import Callable, Dict, List, Optional, Tuple

import jsonschema

from genbridge.core.config import get_config_value
from genbridge.core.error_handler import ConfigurationError
from genbridge.core.logging_config import get_logger
from genbridge.core.types import (
    NormalizedGenerationRequest,
    ProviderProfile,
    WorkflowGraph,
)
from genbridge.core.utils import encode_image_to_base64, get_timestamp, load_json_file, save_json_file
from genbridge.graph.graph_ops import (
    find_latent_size,
    find_nodes,
    find_sampler,
    is_image_input,
    is_model_loader,
    prompt_field,
    remove_node,
    set_seed,
    trace_prompt_node,
    validate_graph,
)
from genbridge.graph.templates import (
    BUILTIN_TEMPLATES,
    IMAGE_EDIT_TEMPLATE_NAME,
    TEXT_TO_IMAGE_TEMPLATE_NAME,
)
from genbridge.graph.uploader import BinaryUploader
from genbridge.providers.geometry import compute_pixel_size

# Initialize logger
logger = get_logger(__name__)

MAX_SEED = 2 ** 48 - 1

# Loader inputs that name the model file
MODEL_FIELDS = ("unet_name", "ckpt_name")


def random_seed() -> int:
    return random.randint(0, MAX_SEED)


class GraphWorkflowBuilder:
    """
    Builds executor-ready workflow graphs from generation requests.

    Args:
        workflows_dir (str, optional): Directory of user templates; defaults to
            graph_executor.workflows_dir. An empty string disables user templates.
        uploader (BinaryUploader, optional): Uploader for input images
        override_dimensions (bool, optional): Also inject dimensions and
            checkpoint into user templates; defaults to
            graph_executor.override_template_dimensions
        seed_generator (Callable[[], int], optional): Seed source
    """

    def __init__(self, workflows_dir: Optional[str] = None, uploader: Optional[BinaryUploader] = None,
                 override_dimensions: Optional[bool] = None,
                 seed_generator: Optional[Callable[[], int]] = None):
        if workflows_dir is None:
            workflows_dir = get_config_value("graph_executor.workflows_dir", "")
        self.workflows_dir = os.path.expanduser(workflows_dir) if workflows_dir else ""

        if override_dimensions is None:
            override_dimensions = bool(get_config_value("graph_executor.override_template_dimensions", False))
        self.override_dimensions = override_dimensions

        self.uploader = uploader or BinaryUploader()
        self.seed_generator = seed_generator or random_seed
        self.uploaded_files: List[str] = []
        self._cache: Dict[str, Tuple[WorkflowGraph, bool]] = {}

    def select_template(self, request: NormalizedGenerationRequest) -> str:
        """
        Name of the template for a request.

        The image-edit template needs an image to edit; a request in
        image-edit mode with only a reference image falls back to text-to-image.
        """
        if request.is_image_edit and (request.primary_image is not None or request.source_image is not None):
            return IMAGE_EDIT_TEMPLATE_NAME
        return TEXT_TO_IMAGE_TEMPLATE_NAME

    def template_path(self, name: str) -> Optional[str]:
        if not self.workflows_dir:
            return None
        return os.path.join(self.workflows_dir, f"{name}.json")

    def load_template(self, name: str) -> Tuple[WorkflowGraph, bool]:
        """
        Load a template by name.

        Args:
            name (str): text_to_image or image_edit

        Returns:
            Tuple[WorkflowGraph, bool]: (deep copy of the graph, whether it is
            the built-in template)

        Raises:
            ConfigurationError: If a user template cannot be read or is invalid
        """
        if name not in self._cache:
            self._cache[name] = self._read_template(name)
        graph, is_builtin = self._cache[name]
        return copy.deepcopy(graph), is_builtin

    def _read_template(self, name: str) -> Tuple[WorkflowGraph, bool]:
        builtin = BUILTIN_TEMPLATES[name]
        path = self.template_path(name)

        if path and os.path.exists(path):
            try:
                graph = load_json_file(path)
                validate_graph(graph)
            except (OSError, json.JSONDecodeError) as e:
                raise ConfigurationError(f"Cannot read workflow template {path}: {e}",
                                         component="graph_executor")
            except jsonschema.exceptions.ValidationError as e:
                raise ConfigurationError(f"Workflow template {path} is not a valid graph: {e.message}",
                                         component="graph_executor")
            except ValueError as e:
                raise ConfigurationError(f"Workflow template {path} is invalid: {e}",
                                         component="graph_executor")

            # An untouched copy of the built-in template still gets full injection
            is_builtin = graph == builtin
            if not is_builtin:
                logger.info(f"Using user workflow template {path}")
            return graph, is_builtin

        if path:
            self._persist_builtin(name, path)
        return copy.deepcopy(builtin), True

    def _persist_builtin(self, name: str, path: str) -> None:
        try:
            save_json_file(BUILTIN_TEMPLATES[name], path, indent=4)
            logger.info(f"Saved default {name} workflow to {path}")
        except OSError as e:
            logger.warning(f"Could not save default workflow to {path}: {e}")

    def build(self, request: NormalizedGenerationRequest, profile: ProviderProfile,
              base_url: str) -> WorkflowGraph:
        """
        Build the workflow graph for a request.

        Input images are uploaded to the executor at base_url while building.

        Args:
            request (NormalizedGenerationRequest): The request
            profile (ProviderProfile): Provider profile (model selection)
            base_url (str): Graph executor base URL

        Returns:
            WorkflowGraph: A new graph, safe to mutate

        Raises:
            ConfigurationError: If the template lacks a sampler or prompt node
            UploadError: If an input image upload fails
        """
        self.uploaded_files = []
        name = self.select_template(request)
        graph, is_builtin = self.load_template(name)
        inject_layout = is_builtin or self.override_dimensions

        sampler_id = find_sampler(graph)
        if sampler_id is None:
            raise ConfigurationError(f"Workflow template '{name}' has no sampler node",
                                     component="graph_executor")

        positive_id = trace_prompt_node(graph, sampler_id, "positive")
        if positive_id is None:
            raise ConfigurationError(f"Workflow template '{name}' has no positive prompt node",
                                     component="graph_executor")
        graph[positive_id]["inputs"][prompt_field(graph[positive_id])] = request.prompt

        negative_id = trace_prompt_node(graph, sampler_id, "negative")
        if is_builtin and negative_id and negative_id != positive_id:
            graph[negative_id]["inputs"][prompt_field(graph[negative_id])] = ""

        seed = self.seed_generator()
        set_seed(graph, sampler_id, seed)
        logger.debug(f"Seed {seed} set on node {sampler_id}")

        if inject_layout:
            self._inject_dimensions(graph, request)
            if name == TEXT_TO_IMAGE_TEMPLATE_NAME:
                self._inject_model(graph, profile)

        if name == IMAGE_EDIT_TEMPLATE_NAME:
            self._inject_images(graph, request, base_url)
        elif request.reference_image is not None and request.is_image_edit:
            logger.warning("Reference image ignored: image editing needs a source image")

        validate_graph(graph)
        return graph

    def _inject_dimensions(self, graph: WorkflowGraph, request: NormalizedGenerationRequest) -> None:
        latent_id = find_latent_size(graph)
        if latent_id is None:
            return
        width, height = compute_pixel_size(request.resolution_tier, request.aspect_ratio)
        inputs = graph[latent_id]["inputs"]
        inputs["width"] = width
        inputs["height"] = height
        logger.debug(f"Latent size set to {width}x{height}")

    def _inject_model(self, graph: WorkflowGraph, profile: ProviderProfile) -> None:
        model = profile.model or ""
        if not model.endswith(".safetensors"):
            return
        for loader_id in find_nodes(graph, is_model_loader):
            inputs = graph[loader_id]["inputs"]
            for model_field in MODEL_FIELDS:
                if model_field in inputs:
                    inputs[model_field] = model
                    return

    def _inject_images(self, graph: WorkflowGraph, request: NormalizedGenerationRequest,
                       base_url: str) -> None:
        image_nodes = find_nodes(graph, is_image_input)
        if not image_nodes:
            raise ConfigurationError("Image edit workflow has no LoadImage node", component="graph_executor")

        source_node = image_nodes[0]
        reference_node = image_nodes[1] if len(image_nodes) > 1 else None

        source = request.source_image if request.source_image is not None else request.primary_image
        graph[source_node]["inputs"]["image"] = self._upload(source, base_url, "source")

        if request.reference_image is not None and reference_node:
            graph[reference_node]["inputs"]["image"] = self._upload(request.reference_image, base_url,
                                                                    "reference")
        elif reference_node:
            cleared = remove_node(graph, reference_node)
            logger.debug(f"Removed unused reference node {reference_node}, cleared {cleared}")
        elif request.reference_image is not None:
            logger.warning("Reference image ignored: workflow has a single LoadImage node")

    def _upload(self, image: bytes, base_url: str, role: str) -> str:
        filename = self.uploader.upload_image(encode_image_to_base64(image), base_url,
                                              filename=f"genbridge_{role}_{get_timestamp()}.png")
        self.uploaded_files.append(filename)
        return filename
