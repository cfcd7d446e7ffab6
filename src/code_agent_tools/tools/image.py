"""
Image and video tools.

Generation goes through the Hugging Face Inference API and writes PNG/MP4
files to the managed output directory; every generator returns a
``MediaReference`` so the host can render the file.
"""

import io
import os
import shutil
from abc import abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp
from huggingface_hub import AsyncInferenceClient
from PIL import Image

from .base import BaseTool, MediaKind, MediaReference, Safety, ToolConfig, ToolError, ToolInput, ToolOutput
from .media import OutputDirectory, extension_from_url
from ..core.config import settings
from ..core.logging import logger


MISSING_TOKEN_MESSAGE = (
    "Error: HF_TOKEN environment variable not set. "
    "Get your token at https://huggingface.co/settings/tokens"
)


def resolve_hf_token(explicit: Optional[str] = None) -> Optional[str]:
    """Hugging Face token, read at call time: explicit, then env, then settings."""
    return explicit or os.environ.get("HF_TOKEN") or settings.hf_token


def encode_png(image: Any) -> bytes:
    """Serialize a generated image as PNG bytes.

    Accepts a PIL image or raw encoded image bytes.

    Raises:
        ValueError: If the payload is not an image
    """
    if isinstance(image, (bytes, bytearray)):
        try:
            image = Image.open(io.BytesIO(bytes(image)))
            image.load()
        except OSError as e:
            raise ValueError(f"payload is not an image ({e})")

    if not isinstance(image, Image.Image):
        raise ValueError(f"expected an image, got {type(image).__name__}")

    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


class GenerationTool(BaseTool):
    """Shared plumbing for Hugging Face text-to-media tools."""

    output_type = "tuple"
    safety = Safety.UNSAFE

    kind: MediaKind = MediaKind.IMAGE
    extension: str = "png"

    def __init__(
        self,
        config: ToolConfig,
        model: str,
        output_dir: Optional[str] = None,
        api_key: Optional[str] = None
    ):
        super().__init__(config)
        self.model = model
        self.output_dir = OutputDirectory(output_dir)
        self._api_key = api_key

    def _client(self, token: str) -> AsyncInferenceClient:
        return AsyncInferenceClient(provider=settings.inference_provider, api_key=token)

    @abstractmethod
    async def _generate(self, client: AsyncInferenceClient, prompt: str) -> bytes:
        """Request one generation and return the encoded file bytes."""
        pass

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        token = resolve_hf_token(self._api_key)
        if not token:
            raise ToolError(MISSING_TOKEN_MESSAGE, self.name)

        prompt = validated_input["prompt"]
        kind = self.kind.value
        logger.info(f"[{self.name}] Generating {kind} with prompt: {prompt[:50]}...")

        try:
            data = await self._generate(self._client(token), prompt)
        except ValueError as e:
            raise ToolError(f"Error: Failed to decode generated {kind} data: {e}", self.name)
        except Exception as e:
            logger.error(f"[{self.name}] Generation failed: {e}")
            raise ToolError(
                f"Error generating {kind}: {e}",
                self.name,
                {"error_type": type(e).__name__, "model": self.model}
            )

        try:
            path = self.output_dir.write(kind, self.extension, data)
        except OSError as e:
            raise ToolError(f"Error saving {kind}: {e}", self.name)

        logger.info(f"[{self.name}] {kind.capitalize()} generated successfully: {path}")
        return MediaReference(kind=self.kind, path=str(path))


class TextToImageTool(GenerationTool):
    inputs = {
        "prompt": ToolInput(type="string", description="Text description of the image to generate")
    }
    kind = MediaKind.IMAGE
    extension = "png"

    def __init__(
        self,
        config: Optional[ToolConfig] = None,
        model: Optional[str] = None,
        output_dir: Optional[str] = None,
        api_key: Optional[str] = None
    ):
        if config is None:
            config = ToolConfig(
                name="text_to_image",
                description=(
                    "Generates an image from a text prompt using Hugging Face Inference API.\n"
                    "Requires HF_TOKEN environment variable to be set.\n\n"
                    "Usage: text_to_image('a cute orange cat sitting on a sunny windowsill, photorealistic')\n\n"
                    "The image is saved as a PNG file in the output directory and returned as "
                    "('image', path).\n\n"
                    "Tips for better results:\n"
                    "- Be descriptive and specific in your prompt\n"
                    "- Include style hints like 'photorealistic', 'artistic', 'detailed'\n"
                    "- Mention lighting, mood, and composition"
                ),
                timeout=settings.generation_timeout,
            )
        super().__init__(config, model or settings.image_model, output_dir, api_key)

    async def _generate(self, client: AsyncInferenceClient, prompt: str) -> bytes:
        image = await client.text_to_image(prompt, model=self.model)
        return encode_png(image)


class TextToVideoTool(GenerationTool):
    inputs = {
        "prompt": ToolInput(type="string", description="Text description of the video to generate")
    }
    kind = MediaKind.VIDEO
    extension = "mp4"

    def __init__(
        self,
        config: Optional[ToolConfig] = None,
        model: Optional[str] = None,
        output_dir: Optional[str] = None,
        api_key: Optional[str] = None
    ):
        if config is None:
            config = ToolConfig(
                name="text_to_video",
                description=(
                    "Generates a video from a text prompt using Hugging Face Inference API.\n"
                    "Requires HF_TOKEN environment variable to be set.\n\n"
                    "Usage: text_to_video('a cat walking on a sunny beach, photorealistic')\n\n"
                    "The video is saved as an MP4 file in the output directory and returned as "
                    "('video', path).\n\n"
                    "Tips for better results:\n"
                    "- Be descriptive and specific in your prompt\n"
                    "- Mention camera movements like 'camera panning', 'slow motion'\n"
                    "- Include style hints and lighting details"
                ),
                timeout=settings.generation_timeout,
            )
        super().__init__(config, model or settings.video_model, output_dir, api_key)

    async def _generate(self, client: AsyncInferenceClient, prompt: str) -> bytes:
        video = await client.text_to_video(prompt, model=self.model)
        if not isinstance(video, (bytes, bytearray)) or not video:
            raise ValueError("empty or non-binary video payload")
        return bytes(video)


class DownloadImageTool(BaseTool):
    """Download an image over HTTP into the output directory."""

    inputs = {
        "url": ToolInput(type="string", description="URL of the image to download")
    }
    output_type = "tuple"
    safety = Safety.SAFE

    def __init__(self, config: Optional[ToolConfig] = None, output_dir: Optional[str] = None):
        if config is None:
            config = ToolConfig(
                name="download_image",
                description="Downloads an image from a URL and saves it locally. "
                            "Returns ('image', path). Call with: download_image(url)",
                timeout=settings.tool_timeout,
            )
        super().__init__(config)
        self.output_dir = OutputDirectory(output_dir)

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        url = validated_input["url"].strip()
        timeout = aiohttp.ClientTimeout(total=settings.http_timeout)

        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        raise ToolError(f"Error downloading image: HTTP {response.status}", self.name)
                    body = await response.read()
        except aiohttp.ClientError as e:
            raise ToolError(f"Error downloading image: {e}", self.name)

        try:
            path = self.output_dir.write("downloaded", extension_from_url(url), body)
        except OSError as e:
            raise ToolError(f"Error saving downloaded image: {e}", self.name)

        logger.info(f"[{self.name}] Image downloaded: {path}")
        return MediaReference(kind=MediaKind.IMAGE, path=str(path))


class LoadImageTool(BaseTool):
    inputs = {
        "path": ToolInput(type="string", description="Local file path of the image")
    }
    output_type = "tuple"
    safety = Safety.SAFE

    def __init__(self, config: Optional[ToolConfig] = None):
        if config is None:
            config = ToolConfig(
                name="load_image",
                description="Loads an image from a local file path. Returns ('image', path). "
                            "Call with: load_image(path)",
                timeout=settings.tool_timeout,
            )
        super().__init__(config)

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        path = validated_input["path"]
        if not os.path.exists(path):
            raise ToolError(f"Error: File not found at {path}", self.name)
        return MediaReference(kind=MediaKind.IMAGE, path=path)


class ImageMetadataTool(BaseTool):
    inputs = {
        "image_path": ToolInput(type="string", description="Path to the image file")
    }
    output_type = "string"
    safety = Safety.SAFE

    def __init__(self, config: Optional[ToolConfig] = None):
        if config is None:
            config = ToolConfig(
                name="image_metadata",
                description="Returns technical metadata about an image file (format, size in KB). "
                            "Does NOT describe image content. For content description, use "
                            "moondream_caption. Call with: image_metadata(image_path)",
                timeout=settings.tool_timeout,
            )
        super().__init__(config)

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        path = Path(validated_input["image_path"])
        if not path.exists():
            raise ToolError(f"Error: File not found at {path}", self.name)

        try:
            size_kb = round(path.stat().st_size / 1024, 2)
        except OSError as e:
            raise ToolError(f"Error getting image metadata: {e}", self.name)

        image_format = path.suffix.lstrip(".")
        return f"Image metadata: {path.name}, Format: {image_format}, Size: {size_kb} KB"


class SaveImageTool(BaseTool):
    inputs = {
        "source_path": ToolInput(type="string", description="Path to the source image"),
        "destination_path": ToolInput(type="string", description="Path where to save the image"),
    }
    output_type = "string"
    safety = Safety.UNSAFE

    def __init__(self, config: Optional[ToolConfig] = None):
        if config is None:
            config = ToolConfig(
                name="save_image",
                description="Saves an image to a specific location. "
                            "Call with: save_image(source_path, destination_path)",
                timeout=settings.tool_timeout,
            )
        super().__init__(config)

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        source = validated_input["source_path"]
        destination = validated_input["destination_path"]

        try:
            await self._run_blocking(shutil.copy, source, destination)
        except OSError as e:
            raise ToolError(f"Error saving image: {e}", self.name)

        logger.info(f"[{self.name}] Copied {source} to {destination}")
        return f"Image saved to {destination}"


def image_tools(
    output_dir: Optional[str] = None,
    image_model: Optional[str] = None,
    video_model: Optional[str] = None
) -> List[BaseTool]:
    """Return all image and video tools."""
    return [
        TextToImageTool(model=image_model, output_dir=output_dir),
        TextToVideoTool(model=video_model, output_dir=output_dir),
        DownloadImageTool(output_dir=output_dir),
        LoadImageTool(),
        ImageMetadataTool(),
        SaveImageTool(),
    ]
