"""
Checks that every third-party library labcert imports is installed and declared.

`pytest labcert/tests/test_dependencies.py -s` prints one `distribution (module) - status`
line per runtime library.
"""
from __future__ import annotations

import importlib
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[2]

# (distribution on the index, import name, where labcert uses it)
RUNTIME_LIBRARIES = [
    ("fastapi", "fastapi", "labcert/main.py"),
    ("uvicorn", "uvicorn", "labcert/main.py"),
    ("pydantic", "pydantic", "labcert/main.py"),
    ("jsonschema", "jsonschema", "labcert/standards_catalog.py"),
    ("numpy", "numpy", "labcert/chart_render.py"),
    ("matplotlib", "matplotlib", "labcert/chart_render.py"),
    ("reportlab", "reportlab", "labcert/certificate_pdf_report.py"),
]
TEST_LIBRARIES = [("pytest", "pytest"), ("httpx", "httpx")]


def test_runtime_libraries_import():
    report = []
    missing = []
    for distribution, module_name, _ in RUNTIME_LIBRARIES:
        try:
            importlib.import_module(module_name)
        except ImportError as exc:  # pragma: no cover - environment dependent
            report.append(f"{distribution} ({module_name}) - MISSING: {exc}")
            missing.append(distribution)
        else:
            report.append(f"{distribution} ({module_name}) - OK")
    print("\n".join(report))
    assert not missing, f"Missing runtime libraries: {', '.join(missing)}"


@pytest.mark.parametrize("distribution,module_name,user", RUNTIME_LIBRARIES)
def test_runtime_library_is_declared_and_used(distribution: str, module_name: str, user: str):
    pyproject = (REPO_ROOT / "pyproject.toml").read_text(encoding="utf-8")
    source = (REPO_ROOT / user).read_text(encoding="utf-8")

    assert f'"{distribution}>=' in pyproject
    assert f"import {module_name}" in source or f"from {module_name}" in source


@pytest.mark.parametrize("distribution,module_name", TEST_LIBRARIES)
def test_test_extra_is_declared(distribution: str, module_name: str):
    pyproject = (REPO_ROOT / "pyproject.toml").read_text(encoding="utf-8")
    test_extra = pyproject.split("[project.optional-dependencies]", 1)[1]
    assert f'"{distribution}>=' in test_extra
    importlib.import_module(module_name)


def test_server_entry_point_runs_the_app_with_uvicorn():
    source = (REPO_ROOT / "labcert" / "main.py").read_text(encoding="utf-8")
    assert 'if __name__ == "__main__":' in source
    assert 'uvicorn.run("labcert.main:app"' in source
