"""
Shared fixtures for dep-bumper tests.
"""

from typing import Callable, Dict, List

import httpx
import pytest

from src.dep_bumper.cli_config import reset_config
from src.dep_bumper.error_handling import setup_error_handling


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Keep user config files and registry rate limits out of tests."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DEP_BUMPER_RATE_LIMIT", "1000")
    for name in ("DEP_BUMPER_NPM_TOKEN", "NPM_TOKEN", "DEP_BUMPER_JSR_TOKEN", "JSR_TOKEN"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    setup_error_handling()
    yield
    reset_config()


class RegistryStub:
    """Routes mocked registry requests and records every request seen."""

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests: List[httpx.Request] = []

    def json(self, url: str, payload, status_code: int = 200) -> None:
        self.routes[url] = lambda request: httpx.Response(status_code, json=payload)

    def status(self, url: str, status_code: int) -> None:
        self.routes[url] = lambda request: httpx.Response(status_code)

    def redirect(self, url: str, location: str) -> None:
        self.routes[url] = lambda request: httpx.Response(302, headers={"Location": location})

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404)
        return route(request)

    def count(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest.fixture
def registry():
    """A mock registry reachable through registry.transport."""
    return RegistryStub()


@pytest.fixture
def project(tmp_path):
    """A small Deno-style project with an import map and two modules."""
    root = tmp_path / "project"
    root.mkdir()
    (root / "deno.json").write_text(
        '{\n'
        '  "imports": {\n'
        '    "std/": "https://deno.land/std@0.200.0/",\n'
        '    "chalk": "npm:chalk@5.0.0"\n'
        '  }\n'
        '}\n',
        encoding="utf-8",
    )
    (root / "mod.ts").write_text(
        'import { assert } from "https://deno.land/std@0.200.0/assert/mod.ts";\n'
        'import chalk from "chalk";\n'
        'import { helper } from "./lib.ts";\n'
        "\n"
        "assert(helper());\n",
        encoding="utf-8",
    )
    (root / "lib.ts").write_text(
        'import { join } from "https://deno.land/std@0.200.0/path/mod.ts";\n'
        'import { z } from "npm:zod@3.21.0";\n'
        "\n"
        "export const helper = () => join(\"a\", \"b\") !== z;\n",
        encoding="utf-8",
    )
    return root


@pytest.fixture
def crlf_project(tmp_path):
    """A CRLF module whose imports change length when bumped."""
    root = tmp_path / "crlf"
    root.mkdir()
    (root / "mod.ts").write_bytes(
        b"// header\r\n"
        b"// more\r\n"
        b'import a from "npm:aaa@1.9.0";\r\n'
        b'import b from "npm:bbb@1.0.0";\r\n'
        b'export { a as c } from "npm:aaa@1.9.0";\r\n'
    )
    return root


@pytest.fixture
def crlf_registry(registry):
    registry.json("https://registry.npmjs.org/aaa", {"dist-tags": {"latest": "1.10.0"}})
    registry.json("https://registry.npmjs.org/bbb", {"dist-tags": {"latest": "10.0.0"}})
    return registry
