"""Shared fixtures: isolated run contexts and scripted operator input."""

import pytest

from config import ANSWER_ENV
from provision.orchestrator import RunContext


@pytest.fixture(autouse=True)
def _no_preset_answers(monkeypatch):
    for var in ANSWER_ENV.values():
        monkeypatch.delenv(var, raising=False)


@pytest.fixture
def scripted_input():
    """input() replacement that replays the given answers in order."""

    def make(*answers):
        queue = list(answers)
        asked = []

        def reader(prompt=""):
            asked.append(prompt)
            if not queue:
                raise EOFError
            return queue.pop(0)

        reader.asked = asked
        return reader

    return make


@pytest.fixture
def make_ctx(tmp_path):
    def make(name="test", **kwargs):
        paths = kwargs.pop("paths", {})
        paths.setdefault("log_file", tmp_path / "_logs" / f"{name}.log")
        return RunContext(name=name, paths=paths, **kwargs)

    return make
