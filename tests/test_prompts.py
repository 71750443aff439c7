"""Tests for operator prompts."""

import pytest

from provision import prompts
from provision.errors import AuthenticationError


def test_confirm_defaults(scripted_input):
    assert prompts.confirm("Go?", input_fn=scripted_input("")) is False
    assert prompts.confirm("Go?", default=True, input_fn=scripted_input("")) is True
    assert prompts.confirm("Go?", input_fn=scripted_input("YES")) is True
    assert prompts.confirm("Go?", input_fn=scripted_input("nope")) is False


def test_confirm_eof_falls_back_to_default(scripted_input):
    assert prompts.confirm("Go?", input_fn=scripted_input()) is False


def test_confirm_assume_yes_never_asks(scripted_input):
    reader = scripted_input()
    assert prompts.confirm("Go?", assume_yes=True, input_fn=reader) is True
    assert reader.asked == []


def test_choose(scripted_input, capsys):
    assert prompts.choose("Pick", ["a", "b"], scripted_input("2")) == 1
    assert prompts.choose("Pick", ["a", "b"], scripted_input("3")) is None
    assert prompts.choose("Pick", ["a", "b"], scripted_input("x")) is None
    assert "1) a" in capsys.readouterr().out


def test_ask_verified_retries_then_fails(capsys):
    tries = iter(["bad", "worse", "still bad"])
    with pytest.raises(AuthenticationError):
        prompts.ask_verified(lambda: next(tries), lambda pw: False, attempts=3)
    assert capsys.readouterr().out.count("Incorrect password") == 3


def test_ask_verified_accepts_second_try():
    tries = iter(["bad", "secret"])
    value = prompts.ask_verified(lambda: next(tries), lambda pw: pw == "secret", attempts=3)
    assert value == "secret"


def test_answers_from_env(monkeypatch):
    monkeypatch.setenv("DEVSETUP_DB_ROOT_PASS", "pw")
    assert prompts.answers_from_env() == {"db_root_password": "pw"}
