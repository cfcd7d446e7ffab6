"""
Vision tools backed by the Moondream API.

Images are sent as base64 data URLs read from local paths.
"""

import os
from abc import abstractmethod
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiohttp

from .base import BaseTool, Safety, ToolConfig, ToolError, ToolInput, ToolOutput
from .media import file_to_data_url
from ..core.config import settings
from ..core.logging import logger


MISSING_KEY_MESSAGE = "Error: Moondream API key missing. Set MOONDREAM_API_KEY environment variable."


class MoondreamAPIError(Exception):
    """Non-200 response from the Moondream API."""

    def __init__(self, status: int, body: str):
        super().__init__(f"HTTP {status}: {body}")
        self.status = status
        self.body = body


def resolve_moondream_key(explicit: Optional[str] = None) -> Optional[str]:
    """Moondream API key, read at call time: explicit, then env, then settings."""
    return explicit or os.environ.get("MOONDREAM_API_KEY") or settings.moondream_api_key


class MoondreamClient:
    """Client for the Moondream caption, query, detect and point endpoints."""

    def __init__(self, api_key: str, base_url: Optional[str] = None, timeout: Optional[int] = None):
        if not api_key:
            raise ToolError(MISSING_KEY_MESSAGE, "moondream")
        self.api_key = api_key
        self.base_url = (base_url or settings.moondream_base_url).rstrip("/")
        self.timeout = timeout or settings.http_timeout

    async def _post(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = self.base_url + endpoint
        headers = {
            "Content-Type": "application/json",
            "X-Moondream-Auth": self.api_key,
        }
        logger.debug(f"Moondream POST {url}")

        async with aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout)) as session:
            async with session.post(url, json=payload, headers=headers) as response:
                if response.status != 200:
                    body = await response.text()
                    logger.error(f"Moondream API error {response.status}: {body[:200]}")
                    raise MoondreamAPIError(response.status, body)
                return await response.json()

    async def caption(self, image_url: str, length: str = "normal") -> Dict[str, Any]:
        return await self._post("/v1/caption", {"image_url": image_url, "length": length})

    async def query(self, image_url: str, question: str) -> Dict[str, Any]:
        return await self._post("/v1/query", {"image_url": image_url, "question": question})

    async def detect(self, image_url: str, object_name: str) -> Dict[str, Any]:
        return await self._post("/v1/detect", {"image_url": image_url, "object": object_name})

    async def point(self, image_url: str, object_name: str) -> Dict[str, Any]:
        return await self._post("/v1/point", {"image_url": image_url, "object": object_name})


def format_detections(object_name: str, objects: List[Dict[str, Any]]) -> str:
    if not objects:
        return f"No '{object_name}' detected in the image"

    lines = []
    for idx, obj in enumerate(objects, 1):
        box = {key: round(float(obj.get(key, 0)), 3) for key in ("x_min", "y_min", "x_max", "y_max")}
        lines.append(
            f"{idx}. Bounding box: x_min={box['x_min']}, y_min={box['y_min']}, "
            f"x_max={box['x_max']}, y_max={box['y_max']}"
        )
    return f"Objects '{object_name}' detected - {len(objects)} occurrence(s):\n" + "\n".join(lines)


def format_points(object_name: str, points: List[Dict[str, Any]]) -> str:
    if not points:
        return f"No point of interest '{object_name}' located in the image"

    lines = [
        f"{idx}. Coordinates: (x: {point.get('x', 0)}, y: {point.get('y', 0)})"
        for idx, point in enumerate(points, 1)
    ]
    return f"Points '{object_name}' located - {len(points)} point(s):\n" + "\n".join(lines)


class MoondreamTool(BaseTool):
    """Shared request flow: read image, build client, call, format."""

    output_type = "string"
    safety = Safety.SAFE

    # Prefix of the error text for API failures, e.g. "Error generating caption"
    failure_message = "Error calling Moondream"

    def __init__(
        self,
        name: str,
        description: str,
        config: Optional[ToolConfig] = None,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None
    ):
        if config is None:
            config = ToolConfig(name=name, description=description, timeout=settings.tool_timeout)
        super().__init__(config)
        self._api_key = api_key
        self._base_url = base_url

    def _image_url(self, image_path: str) -> str:
        if not Path(image_path).exists():
            raise ToolError(f"Error: Image file not found: {image_path}", self.name)
        try:
            return file_to_data_url(image_path)
        except OSError as e:
            raise ToolError(f"Error: Failed to read image: {e}", self.name)

    def _client(self) -> MoondreamClient:
        api_key = resolve_moondream_key(self._api_key)
        if not api_key:
            logger.error(f"[{self.name}] Moondream API key missing")
            raise ToolError(MISSING_KEY_MESSAGE, self.name)
        return MoondreamClient(api_key, self._base_url)

    @abstractmethod
    async def _call(self, validated_input: Dict[str, str]) -> Dict[str, Any]:
        """Send the endpoint request and return the decoded JSON response."""
        pass

    @abstractmethod
    def _format(self, validated_input: Dict[str, str], response: Dict[str, Any]) -> str:
        pass

    async def _execute(self, validated_input: Dict[str, str]) -> ToolOutput:
        try:
            response = await self._call(validated_input)
        except (MoondreamAPIError, aiohttp.ClientError) as e:
            raise ToolError(f"{self.failure_message}: {e}", self.name, {"error_type": type(e).__name__})

        return self._format(validated_input, response)


class MoondreamCaptionTool(MoondreamTool):
    inputs = {
        "image_path": ToolInput(type="string", description="Path to the image file")
    }
    failure_message = "Error generating caption"

    def __init__(self, config: Optional[ToolConfig] = None, **kwargs):
        super().__init__(
            "moondream_caption",
            "Generates a descriptive caption for an image. Call with: moondream_caption(image_path)",
            config,
            **kwargs
        )

    async def _call(self, validated_input: Dict[str, str]) -> Dict[str, Any]:
        image_url = self._image_url(validated_input["image_path"])
        return await self._client().caption(image_url)

    def _format(self, validated_input: Dict[str, str], response: Dict[str, Any]) -> str:
        logger.info(f"[{self.name}] Caption generated")
        return f"Caption: {response.get('caption', 'No caption generated')}"


class MoondreamQueryTool(MoondreamTool):
    inputs = {
        "image_path": ToolInput(type="string", description="Path to the image file"),
        "question": ToolInput(type="string", description="Question to ask about the image"),
    }
    failure_message = "Error querying image"

    def __init__(self, config: Optional[ToolConfig] = None, **kwargs):
        super().__init__(
            "moondream_query",
            "Answers a specific question about an image. Call with: moondream_query(image_path, question)",
            config,
            **kwargs
        )

    async def _call(self, validated_input: Dict[str, str]) -> Dict[str, Any]:
        image_url = self._image_url(validated_input["image_path"])
        return await self._client().query(image_url, validated_input["question"])

    def _format(self, validated_input: Dict[str, str], response: Dict[str, Any]) -> str:
        logger.info(f"[{self.name}] Query answered")
        answer = response.get("answer", "No answer available")
        return f"Question: {validated_input['question']}\nAnswer: {answer}"


class MoondreamDetectTool(MoondreamTool):
    inputs = {
        "image_path": ToolInput(type="string", description="Path to the image file"),
        "object": ToolInput(type="string", description="Object to detect (e.g., 'person', 'car', 'dog')"),
    }
    failure_message = "Error detecting objects"

    def __init__(self, config: Optional[ToolConfig] = None, **kwargs):
        super().__init__(
            "moondream_detect",
            "Detects and locates specific objects in an image with bounding boxes. "
            "Call with: moondream_detect(image_path, object)",
            config,
            **kwargs
        )

    async def _call(self, validated_input: Dict[str, str]) -> Dict[str, Any]:
        image_url = self._image_url(validated_input["image_path"])
        return await self._client().detect(image_url, validated_input["object"])

    def _format(self, validated_input: Dict[str, str], response: Dict[str, Any]) -> str:
        objects = response.get("objects", [])
        logger.info(f"[{self.name}] Detect completed - {len(objects)} object(s) found")
        return format_detections(validated_input["object"], objects)


class MoondreamPointTool(MoondreamTool):
    inputs = {
        "image_path": ToolInput(type="string", description="Path to the image file"),
        "object": ToolInput(type="string", description="Element to locate (e.g., 'face', 'text', 'logo')"),
    }
    failure_message = "Error locating points"

    def __init__(self, config: Optional[ToolConfig] = None, **kwargs):
        super().__init__(
            "moondream_point",
            "Locates a specific point of interest in an image (returns x, y coordinates). "
            "Call with: moondream_point(image_path, object)",
            config,
            **kwargs
        )

    async def _call(self, validated_input: Dict[str, str]) -> Dict[str, Any]:
        image_url = self._image_url(validated_input["image_path"])
        return await self._client().point(image_url, validated_input["object"])

    def _format(self, validated_input: Dict[str, str], response: Dict[str, Any]) -> str:
        points = response.get("points", [])
        logger.info(f"[{self.name}] Point completed - {len(points)} point(s) found")
        return format_points(validated_input["object"], points)


def moondream_tools(api_key: Optional[str] = None) -> List[BaseTool]:
    """Return all Moondream tools."""
    return [
        MoondreamCaptionTool(api_key=api_key),
        MoondreamQueryTool(api_key=api_key),
        MoondreamDetectTool(api_key=api_key),
        MoondreamPointTool(api_key=api_key),
    ]


def basic_moondream_tools(api_key: Optional[str] = None) -> List[BaseTool]:
    """Return the caption and query tools only."""
    return [
        MoondreamCaptionTool(api_key=api_key),
        MoondreamQueryTool(api_key=api_key),
    ]
