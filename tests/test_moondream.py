"""
Tests for the Moondream vision tools with HTTP mocked.
"""

import pytest

from code_agent_tools.tools.base import ToolStatus
from code_agent_tools.tools.moondream import (
    MISSING_KEY_MESSAGE,
    MoondreamCaptionTool,
    MoondreamDetectTool,
    MoondreamPointTool,
    MoondreamQueryTool,
    MoondreamTool,
    basic_moondream_tools,
    format_detections,
    format_points,
    moondream_tools,
)


@pytest.fixture
def image_path(tmp_path):
    path = tmp_path / "cat.png"
    path.write_bytes(b"\x89PNG fake")
    return str(path)


@pytest.mark.asyncio
async def test_caption(fake_http, http_response, image_path):
    session = fake_http(http_response(json_data={"caption": "A cat on a sofa"}))

    result = await MoondreamCaptionTool(api_key="md-key").run(image_path)

    assert result.content == "Caption: A cat on a sofa"
    request = session.requests[0]
    assert request["method"] == "POST"
    assert request["url"] == "https://api.moondream.ai/v1/caption"
    assert request["headers"]["X-Moondream-Auth"] == "md-key"
    assert request["json"]["image_url"].startswith("data:image/png;base64,")
    assert request["json"]["length"] == "normal"


@pytest.mark.asyncio
async def test_query(fake_http, http_response, image_path):
    session = fake_http(http_response(json_data={"answer": "Orange"}))

    result = await MoondreamQueryTool(api_key="md-key").run(
        {"image_path": image_path, "question": "What color is the cat?"}
    )

    assert result.content == "Question: What color is the cat?\nAnswer: Orange"
    assert session.requests[0]["json"]["question"] == "What color is the cat?"


@pytest.mark.asyncio
async def test_detect(fake_http, http_response, image_path):
    fake_http(http_response(json_data={
        "objects": [{"x_min": 0.1, "y_min": 0.2, "x_max": 0.5557, "y_max": 0.9}]
    }))

    result = await MoondreamDetectTool(api_key="md-key").run({"image_path": image_path, "object": "cat"})

    assert result.content == (
        "Objects 'cat' detected - 1 occurrence(s):\n"
        "1. Bounding box: x_min=0.1, y_min=0.2, x_max=0.556, y_max=0.9"
    )


@pytest.mark.asyncio
async def test_point(fake_http, http_response, image_path):
    session = fake_http(http_response(json_data={"points": [{"x": 0.5, "y": 0.25}]}))

    result = await MoondreamPointTool(api_key="md-key").run({"image_path": image_path, "object": "nose"})

    assert result.content == "Points 'nose' located - 1 point(s):\n1. Coordinates: (x: 0.5, y: 0.25)"
    assert session.requests[0]["url"].endswith("/v1/point")


def test_empty_detections_and_points():
    assert format_detections("dog", []) == "No 'dog' detected in the image"
    assert format_points("logo", []) == "No point of interest 'logo' located in the image"


@pytest.mark.asyncio
async def test_missing_api_key(no_credentials, image_path):
    result = await MoondreamCaptionTool().run(image_path)

    assert result.status == ToolStatus.ERROR
    assert result.error == MISSING_KEY_MESSAGE
    assert result.error == "Error: Moondream API key missing. Set MOONDREAM_API_KEY environment variable."


@pytest.mark.asyncio
async def test_key_read_from_environment(monkeypatch, fake_http, http_response, image_path):
    monkeypatch.setenv("MOONDREAM_API_KEY", "env-key")
    session = fake_http(http_response(json_data={"caption": "x"}))

    await MoondreamCaptionTool().run(image_path)

    assert session.requests[0]["headers"]["X-Moondream-Auth"] == "env-key"


@pytest.mark.asyncio
async def test_missing_image(tmp_path):
    missing = str(tmp_path / "nope.jpg")

    result = await MoondreamQueryTool(api_key="md-key").run({"image_path": missing, "question": "?"})

    assert result.error == f"Error: Image file not found: {missing}"


@pytest.mark.asyncio
async def test_api_error(fake_http, http_response, image_path):
    fake_http(http_response(status=401, text="invalid key"))

    result = await MoondreamCaptionTool(api_key="bad").run(image_path)

    assert result.error == "Error generating caption: HTTP 401: invalid key"


def test_tool_sets():
    assert [tool.name for tool in moondream_tools()] == [
        "moondream_caption", "moondream_query", "moondream_detect", "moondream_point"
    ]
    assert [tool.name for tool in basic_moondream_tools()] == ["moondream_caption", "moondream_query"]


def test_moondream_tool_requires_call_and_format():
    with pytest.raises(TypeError):
        MoondreamTool("moondream", "Calls nothing")
