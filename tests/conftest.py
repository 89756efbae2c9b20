"""Shared test fixtures and configuration."""

import asyncio
from pathlib import Path

import pytest

from ipuaro.clients.base import LLMClient
from ipuaro.config import Settings
from ipuaro.core import Session
from ipuaro.storage import InMemorySessionStorage, InMemoryStorage
from ipuaro.tools import ToolContext
from ipuaro.types import LLMResponse, create_file_data


def run(coro):
    """Drive a coroutine to completion from a sync test."""
    return asyncio.run(coro)


class ScriptedLLM(LLMClient):
    """LLM client replaying a fixed list of responses (or exceptions)."""

    def __init__(self, responses: list[LLMResponse | Exception]):
        super().__init__()
        self.responses = list(responses)
        self.calls: list[list] = []
        self.aborted = False

    async def chat(self, messages, tools=None) -> LLMResponse:
        self.calls.append(list(messages))
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def is_available(self) -> bool:
        return True

    def abort(self) -> None:
        self.aborted = True


@pytest.fixture
def project_root(tmp_path) -> Path:
    """A small python project on disk."""
    root = tmp_path / "project"
    (root / "pkg").mkdir(parents=True)
    (root / "pkg" / "__init__.py").write_text("from .core import greet\n")
    (root / "pkg" / "core.py").write_text(
        "from .util import helper\n"
        "\n"
        "\n"
        "def greet(name):\n"
        "    return helper(name)\n"
    )
    (root / "pkg" / "util.py").write_text(
        "def helper(value):\n"
        "    return f'hello {value}'\n"
    )
    (root / "README.md").write_text("# demo\n")
    return root


@pytest.fixture
def storage() -> InMemoryStorage:
    return InMemoryStorage()


@pytest.fixture
def session_storage() -> InMemorySessionStorage:
    return InMemorySessionStorage()


@pytest.fixture
def session() -> Session:
    return Session("project")


@pytest.fixture
def settings() -> Settings:
    return Settings(_env_file=None, max_retries=2, max_tool_iterations=5)


@pytest.fixture
def make_ctx(project_root, storage):
    """Build a ToolContext with a configurable confirmation answer."""
    def factory(confirm: bool = True) -> ToolContext:
        async def request_confirmation(message: str) -> bool:
            factory.messages.append(message)
            return confirm
        return ToolContext(
            project_root=project_root,
            storage=storage,
            request_confirmation=request_confirmation,
        )
    factory.messages = []
    return factory


def store_file(storage, project_root: Path, rel_path: str) -> None:
    """Put the on-disk content of a file into storage."""
    path = project_root / rel_path
    content = path.read_text()
    run(storage.set_file(rel_path, create_file_data(content, len(content), path.stat().st_mtime * 1000)))
