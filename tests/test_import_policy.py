"""
Tests for import allow-listing.
"""

from code_agent_tools.tools.import_policy import SAFE_STDLIB_IMPORTS, ImportPolicy, extract_imports
from code_agent_tools.tools.sandbox import describe_rejection


def test_extract_all_import_forms():
    code = "import os\nfrom a.b import c\nimport numpy as np\n"
    assert extract_imports(code) == ["os", "a.b", "numpy"]


def test_extract_multiple_names_and_nested_imports():
    code = (
        "import json, csv\n"
        "def load():\n"
        "    import sqlite3\n"
        "    return sqlite3\n"
        "if True:\n"
        "    from pathlib import Path\n"
    )
    assert extract_imports(code) == ["json", "csv", "sqlite3", "pathlib"]


def test_extract_ignores_relative_imports():
    assert extract_imports("from . import sibling\nfrom .pkg import x\nimport os") == ["os"]


def test_extract_deduplicates_in_first_seen_order():
    assert extract_imports("import sys\nimport os\nimport sys\nfrom os import path") == ["sys", "os"]


def test_extract_falls_back_to_patterns_on_syntax_error():
    code = "import os\nfrom subprocess import run\ndef broken(:\n"
    assert extract_imports(code) == ["os", "subprocess"]


def test_unrestricted_policy_allows_everything():
    policy = ImportPolicy(None)

    check = policy.check("import os\nimport subprocess")

    assert not policy.is_restricted
    assert check.allowed
    assert check.unauthorized == []


def test_dotted_descendants_are_authorized():
    policy = ImportPolicy(["numpy"])

    assert policy.is_authorized("numpy")
    assert policy.is_authorized("numpy.linalg")
    assert not policy.is_authorized("numpyx")
    assert not policy.is_authorized("num")


def test_check_reports_every_unauthorized_module():
    policy = ImportPolicy(["math"])

    check = policy.check("import math\nimport os\nfrom subprocess import run\nimport os")

    assert not check.allowed
    assert check.unauthorized == ["os", "subprocess"]
    assert describe_rejection(check) == "Unauthorized imports: os, subprocess"


def test_empty_allow_list_rejects_any_import():
    policy = ImportPolicy([])

    assert policy.is_restricted
    assert policy.check("result = 1").allowed
    assert policy.check("import math").unauthorized == ["math"]


def test_code_without_imports_is_allowed():
    assert ImportPolicy(["math"]).check("result = sum([1, 2, 3])").allowed


def test_safe_stdlib_allow_list():
    policy = ImportPolicy(SAFE_STDLIB_IMPORTS)

    assert policy.check("import math\nimport json\nfrom collections import Counter").allowed
    assert policy.check("import os").unauthorized == ["os"]


def test_allow_list_order_and_dedupe():
    policy = ImportPolicy(["re", "math", "re"])
    assert policy.allowed_imports == ("re", "math")
