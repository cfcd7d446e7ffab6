"""
Tests for the assembled tool system: tool sets, the registry, descriptors
and the command line entry point.
"""

import pytest

from code_agent_tools import cli
from code_agent_tools.cli import main
from code_agent_tools.tools import (
    ToolRegistry,
    all_descriptors,
    all_tools,
    default_registry,
    get_tool,
    get_tool_registry,
    python_tools,
    register_tool,
)

EXPECTED_TOOLS = [
    "python_interpreter",
    "wikipedia_search",
    "wikipedia_page",
    "stock_price",
    "stock_history",
    "stock_info",
    "compare_stocks",
    "text_to_image",
    "text_to_video",
    "download_image",
    "load_image",
    "image_metadata",
    "save_image",
    "moondream_caption",
    "moondream_query",
    "moondream_detect",
    "moondream_point",
]


@pytest.fixture(autouse=True)
def logging_calls(monkeypatch):
    """Keep CLI runs from replacing the loguru handlers of the test session."""
    calls = []
    monkeypatch.setattr(cli, "configure_logging", lambda: calls.append(True))
    return calls


def test_all_tools(output_dir):
    assert [tool.name for tool in all_tools(output_dir=output_dir)] == EXPECTED_TOOLS


def test_python_tools_apply_allow_list(output_dir):
    (tool,) = python_tools(allowed_imports=["math"], output_dir=output_dir)
    assert tool("import os") == "Unauthorized imports: os"


def test_default_registry(output_dir):
    registry = default_registry(output_dir=output_dir)

    assert isinstance(registry, ToolRegistry)
    assert registry.list_tools() == EXPECTED_TOOLS
    assert registry.get_tool("python_interpreter")("result = 6 * 7") == "42"


def test_default_registry_fills_given_registry(output_dir):
    registry = ToolRegistry()
    assert default_registry(output_dir=output_dir, registry=registry) is registry


def test_all_descriptors(output_dir):
    descriptors = {d.name: d for d in all_descriptors(output_dir=output_dir)}

    assert list(descriptors) == EXPECTED_TOOLS
    assert descriptors["text_to_video"].output_type == "tuple"
    assert descriptors["save_image"].safety.value == "unsafe"
    assert descriptors["stock_price"].safety.value == "safe"
    assert list(descriptors["moondream_query"].inputs) == ["image_path", "question"]
    assert descriptors["stock_history"].inputs["period"].default == "1mo"
    assert all(callable(d.function) for d in descriptors.values())


def test_global_registry(output_dir):
    (tool,) = python_tools(output_dir=output_dir)

    register_tool(tool)

    assert get_tool("python_interpreter") is tool
    assert get_tool_registry().unregister_tool("python_interpreter")


def test_cli_list(capsys, output_dir, logging_calls):
    assert main(["--output-dir", output_dir, "list", "-v"]) == 0
    assert logging_calls == [True]

    out = capsys.readouterr().out
    assert "python_interpreter (string, unsafe)" in out
    assert "    code: string - " in out
    assert "[default: 1mo]" in out


def test_cli_run(capsys, tmp_path, output_dir):
    script = tmp_path / "job.py"
    script.write_text("import math\nresult = math.factorial(5)\n", encoding="utf-8")

    assert main(["--output-dir", output_dir, "run", str(script), "--allow", "math"]) == 0
    assert capsys.readouterr().out.strip() == "120"


def test_cli_run_rejected(capsys, tmp_path, output_dir):
    script = tmp_path / "job.py"
    script.write_text("import os\nimport socket\n", encoding="utf-8")

    assert main(["--output-dir", output_dir, "run", str(script), "--safe-imports"]) == 1
    assert capsys.readouterr().out.strip() == "Unauthorized imports: os, socket"


def test_cli_run_media(capsys, tmp_path, output_dir):
    script = tmp_path / "plot.py"
    script.write_text("result = ('image', 'chart.png')\n", encoding="utf-8")

    assert main(["--output-dir", output_dir, "run", str(script)]) == 0
    assert capsys.readouterr().out.strip() == f"image: {output_dir}/chart.png"


def test_cli_missing_file(capsys, tmp_path):
    assert main(["run", str(tmp_path / "missing.py")]) == 1
    assert "File not found" in capsys.readouterr().err


def test_cli_requires_command():
    with pytest.raises(SystemExit):
        main([])
