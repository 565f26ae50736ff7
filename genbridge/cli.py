"""
Command-line interface for the genbridge package.

This module provides the CLI commands for the genbridge package:
- generate: Generate an image with a configured provider
- classify: Show the protocol family and endpoint for a provider
- geometry: Compute the pixel size for a resolution tier and aspect ratio
- test-connection: Check that a provider is reachable
"""

import sys
from typing import Optional

import click

from genbridge import __version__
from genbridge.core.config import get_config_value
from genbridge.core.credentials import get_api_key
from genbridge.core.error_handler import GenerationError, redact_url
from genbridge.core.logging_config import configure_logging, get_logger
from genbridge.core.types import (
    GenerationMode,
    NormalizedGenerationRequest,
    ProviderProfile,
    ResolutionTier,
)
from genbridge.core.utils import get_image_size
from genbridge.providers.classifier import ProviderEndpoint, classify_provider
from genbridge.providers.geometry import closest_aspect_ratio, compute_pixel_size

# Initialize logging
configure_logging()
logger = get_logger(__name__)

RESOLUTION_CHOICES = ["low", "mid", "high", "1K", "2K", "4K"]


def _read_image(path: Optional[str]) -> Optional[bytes]:
    if not path:
        return None
    with open(path, "rb") as f:
        return f.read()


def _build_profile(provider: str, base_url: str, api_key: Optional[str], model: Optional[str]) -> ProviderProfile:
    family = classify_provider(provider, base_url)
    api_key = api_key or get_api_key(provider, base_url, family) or ""
    return ProviderProfile(name=provider, base_url=base_url, api_key=api_key, model=model or "")


def provider_options(func):
    """Options shared by commands that talk to a provider."""
    func = click.option('--model', type=str, help='Model identifier (default: provider default)')(func)
    func = click.option('--api-key', type=str, envvar='GENBRIDGE_API_KEY',
                        help='API key (default: provider environment variable)')(func)
    func = click.option('-u', '--base-url', type=str, required=True, help='Provider base URL')(func)
    func = click.option('-p', '--provider', type=str, required=True,
                        help='Provider name, e.g. "Google Gemini", "OpenRouter", "ComfyUI"')(func)
    return func


@click.group()
@click.version_option(version=__version__)
def main():
    """
    genbridge - one interface to many image generation backends.

    Sends a prompt (and optionally images to edit) to Gemini, Gemini-compatible
    proxies, chat-completions resellers, the Seedream image endpoint or a local
    ComfyUI server, and saves the returned image.
    """
    pass


@main.command()
@click.argument('prompt', type=str)
@provider_options
@click.option('-a', '--aspect-ratio', type=str,
              help='Aspect ratio W:H (default: from the input image, otherwise 1:1)')
@click.option('-r', '--resolution', type=click.Choice(RESOLUTION_CHOICES, case_sensitive=False), default='low',
              help='Resolution tier (low=1K, mid=2K, high=4K)')
@click.option('-i', '--image', 'image_path', type=click.Path(exists=True, dir_okay=False, readable=True),
              help='Image to edit (single-image edit)')
@click.option('--source', 'source_path', type=click.Path(exists=True, dir_okay=False, readable=True),
              help='Source layer to modify (multi-image edit)')
@click.option('--reference', 'reference_path', type=click.Path(exists=True, dir_okay=False, readable=True),
              help='Reference layer for style/content (multi-image edit)')
@click.option('--web-search', is_flag=True, default=False, help='Enable web search (Gemini providers)')
@click.option('-o', '--output-dir', type=click.Path(file_okay=False, dir_okay=True),
              help='Output directory (default: output.directory from config)')
@click.option('--debug', is_flag=True, default=False,
              help='Save raw payloads, responses and errors to debug.directory')
def generate(prompt: str, provider: str, base_url: str, api_key: Optional[str], model: Optional[str],
             aspect_ratio: Optional[str], resolution: str, image_path: Optional[str],
             source_path: Optional[str], reference_path: Optional[str], web_search: bool,
             output_dir: Optional[str], debug: bool):
    """
    Generate an image from a prompt.

    PROMPT: Text describing the image, or the edit to make

    Passing --image, --source or --reference switches to image editing.
    --image cannot be combined with --source/--reference.

    Examples:
      genbridge generate "a red fox" -p "Google Gemini" -u https://generativelanguage.googleapis.com -a 16:9
      genbridge generate "make it night" -p OpenRouter -u https://openrouter.ai --source in.png --reference style.png
      genbridge generate "a castle" -p ComfyUI -u http://127.0.0.1:8188 -r mid
    """
    from genbridge.pipeline.debug_capture import FileDebugCapture
    from genbridge.pipeline.orchestrator import GenerationOrchestrator
    from genbridge.pipeline.output import save_result

    try:
        profile = _build_profile(provider, base_url, api_key, model)
        primary_image = _read_image(image_path)
        source_image = _read_image(source_path)
        reference_image = _read_image(reference_path)
        edit_image = source_image or primary_image
        mode = GenerationMode.IMAGE_EDIT if (primary_image or source_image or reference_image) \
            else GenerationMode.TEXT_TO_IMAGE

        if not aspect_ratio:
            size = get_image_size(edit_image) if edit_image else None
            aspect_ratio = closest_aspect_ratio(*size) if size else "1:1"
            logger.info(f"Using aspect ratio {aspect_ratio}")

        request = NormalizedGenerationRequest(
            prompt=prompt,
            aspect_ratio=aspect_ratio,
            resolution_tier=ResolutionTier.from_label(resolution),
            generation_mode=mode,
            web_search_enabled=web_search,
            primary_image=primary_image,
            source_image=source_image,
            reference_image=reference_image,
        )

        orchestrator = GenerationOrchestrator(debug_sink=FileDebugCapture() if debug else None)
        click.echo(f"Generating with {provider}...")
        result = orchestrator.generate(request, profile, debug_capture=debug)

        output_path = save_result(result, output_dir or get_config_value("output.directory", "output"))
        click.echo(f"Image saved to: {output_path}")
    except GenerationError as e:
        click.echo(f"Error ({e.kind}): {e}", err=True)
        sys.exit(1)


@main.command()
@click.argument('name', type=str)
@click.argument('base_url', type=str)
def classify(name: str, base_url: str):
    """
    Show how a provider is classified.

    NAME: Provider name

    BASE_URL: Provider base URL
    """
    profile = ProviderProfile(name=name, base_url=base_url)
    endpoint = ProviderEndpoint(profile)
    click.echo(f"Family: {endpoint.family.value}")
    click.echo(f"Endpoint: {redact_url(endpoint.generate_url())}")
    click.echo(f"Default model: {endpoint.model}")


@main.command()
@click.argument('resolution', type=click.Choice(RESOLUTION_CHOICES, case_sensitive=False))
@click.argument('aspect_ratio', type=str)
def geometry(resolution: str, aspect_ratio: str):
    """
    Compute the pixel size for a resolution tier and aspect ratio.

    RESOLUTION: low, mid, high (or 1K, 2K, 4K)

    ASPECT_RATIO: Ratio as W:H, e.g. 16:9
    """
    width, height = compute_pixel_size(ResolutionTier.from_label(resolution), aspect_ratio)
    click.echo(f"{width}x{height}")


@main.command(name='test-connection')
@provider_options
def test_connection_command(provider: str, base_url: str, api_key: Optional[str], model: Optional[str]):
    """
    Check that a provider is reachable with the given credentials.
    """
    from genbridge.providers.connection import check_connection

    profile = _build_profile(provider, base_url, api_key, model)
    result = check_connection(profile)
    if result.success:
        click.echo(result.message)
    else:
        click.echo(f"Connection failed: {result.message}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    main()
