"""Tests for the practice test CLI."""

import json
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

import pytest

from testgen.backend import reset_backend
from testgen.cli import main


@pytest.fixture(autouse=True)
def fresh_backend():
    reset_backend()
    yield
    reset_backend()


def test_plan_json(capsys):
    code = main(["plan", "--course", "Biology", "--topic", "Cells", "--topic", "Genetics",
                 "--count", "4", "--json"])
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["question_count"] == 4
    assert [s["topic"] for s in data["slots"]] == ["Cells", "Genetics", "Cells", "Genetics"]


def test_plan_table(capsys):
    code = main(["plan", "--course", "Biology", "--topic", "Cells", "--count", "2"])
    assert code == 0
    out = capsys.readouterr().out
    assert "S1" in out and "S2" in out
    assert "Cells=2" in out


def test_plan_rejects_zero_questions(capsys):
    code = main(["plan", "--course", "Biology", "--topic", "Cells", "--count", "0"])
    assert code == 2
    assert "question_count" in capsys.readouterr().err


def test_generate_offline_json(capsys):
    code = main(["generate", "--offline", "--course", "Physics", "--topic", "Optics",
                 "--topic", "Waves", "--count", "3", "--difficulty", "hard", "--json"])
    assert code == 0
    data = json.loads(capsys.readouterr().out)
    assert data["ok"] is True
    assert [q["position"] for q in data["questions"]] == [0, 1, 2]
    assert {q["difficulty"] for q in data["questions"]} == {"hard"}
    assert data["stats"]["total_attempts"] == 3


def test_generate_offline_text(capsys):
    code = main(["generate", "--offline", "--course", "Physics", "--topic", "Optics", "--count", "2",
                 "--format", "short_answer"])
    assert code == 0
    out = capsys.readouterr().out
    assert "S1." in out and "S2." in out
    assert "2/2 questions" in out


def test_backend_status_offline(capsys):
    assert main(["backend-status", "--offline"]) == 0
    assert "offline: available" in capsys.readouterr().out


def test_no_command_prints_help(capsys):
    assert main([]) == 0
    assert "usage" in capsys.readouterr().out.lower()
