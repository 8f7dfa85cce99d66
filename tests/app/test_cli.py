from __future__ import annotations

import json
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING

import pytest

from donorlens.config import PipelineSettings
from donorlens.domain.checkpoints import CheckpointRecord, StepStatus
from donorlens.domain.research import PipelineResult
from donorlens.domain.subject import SubjectContext, derive_subject_id
from donorlens.ui import cli as cli_module

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path


@pytest.fixture(autouse=True)
def default_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli_module, "get_pipeline_settings", PipelineSettings)


def _exit_code(argv: list[str]) -> int | str | None:
    with pytest.raises(SystemExit) as excinfo:
        cli_module.main(argv)
    return excinfo.value.code


def test_research_builds_subject_and_flags(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured: dict[str, object] = {}

    def fake_research(
        subject: SubjectContext, *, settings: PipelineSettings, force: bool
    ) -> PipelineResult:
        captured.update(subject=subject, settings=settings, force=force)
        return PipelineResult(subject_id=subject.subject_id, success=True)

    monkeypatch.setattr(cli_module, "research_prospect", fake_research)

    code = _exit_code(
        ["research", "Jane Doe", "--city", "Portland", "--state", "OR", "--no-optional", "--force"]
    )

    assert code == 0
    subject = captured["subject"]
    assert isinstance(subject, SubjectContext)
    assert subject.subject_id == derive_subject_id("Jane Doe", city="Portland", state="OR")
    assert subject.city == "Portland"
    settings = captured["settings"]
    assert isinstance(settings, PipelineSettings)
    assert not settings.run_optional_steps
    assert not settings.skip_verification
    assert captured["force"] is True
    assert json.loads(capsys.readouterr().out)["subject_id"] == subject.subject_id


def test_research_exits_nonzero_on_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_research(subject: SubjectContext, **_: object) -> PipelineResult:
        return PipelineResult(subject_id=subject.subject_id, success=False)

    monkeypatch.setattr(cli_module, "research_prospect", fake_research)

    assert _exit_code(["research", "Jane Doe", "--subject-id", "s1"]) == 1


def test_unexpected_error_exits_with_one(monkeypatch: pytest.MonkeyPatch) -> None:
    def fake_research(*_: object, **__: object) -> PipelineResult:
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(cli_module, "research_prospect", fake_research)

    assert _exit_code(["research", "Jane Doe"]) == 1


def test_batch_reads_subjects_from_file(
    monkeypatch: pytest.MonkeyPatch, tmp_path: Path
) -> None:
    captured: dict[str, object] = {}

    def fake_batch(
        subjects: Iterable[SubjectContext], *, settings: PipelineSettings, force: bool
    ) -> list[PipelineResult]:
        subject_list = list(subjects)
        captured.update(subjects=subject_list, settings=settings, force=force)
        return [PipelineResult(subject_id=s.subject_id, success=True) for s in subject_list]

    monkeypatch.setattr(cli_module, "research_prospects", fake_batch)
    path = tmp_path / "subjects.json"
    path.write_text(
        json.dumps(
            [
                {"name": "Jane Doe", "subject_id": "jane", "employer": "Acme Corp"},
                {"name": "John Roe", "state": "WA"},
            ]
        ),
        encoding="utf-8",
    )

    code = _exit_code(["batch", str(path), "--max-concurrent", "4", "--skip-verification"])

    assert code == 0
    subjects = captured["subjects"]
    assert isinstance(subjects, list)
    assert [s.subject_id for s in subjects] == ["jane", derive_subject_id("John Roe", state="WA")]
    assert subjects[0].employer == "Acme Corp"
    settings = captured["settings"]
    assert isinstance(settings, PipelineSettings)
    assert settings.max_concurrent_subjects == 4
    assert settings.skip_verification
    assert captured["force"] is False


@pytest.mark.parametrize(
    "content",
    ['{"name": "Jane Doe"}', '[{"city": "Portland"}]', "not json"],
)
def test_batch_rejects_bad_subject_files(tmp_path: Path, content: str) -> None:
    path = tmp_path / "subjects.json"
    path.write_text(content, encoding="utf-8")

    assert _exit_code(["batch", str(path)]) == 2


def test_batch_rejects_zero_concurrency(tmp_path: Path) -> None:
    path = tmp_path / "subjects.json"
    path.write_text('[{"name": "Jane Doe"}]', encoding="utf-8")

    assert _exit_code(["batch", str(path), "--max-concurrent", "0"]) == 2


def test_checkpoints_show_and_reset(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(
        cli_module, "checkpoint_summary", lambda subject_id: {"subject_id": subject_id, "total": 2}
    )
    monkeypatch.setattr(cli_module, "reset_subject", lambda _subject_id: 2)

    assert _exit_code(["checkpoints", "show", "s1"]) == 0
    assert json.loads(capsys.readouterr().out) == {"subject_id": "s1", "total": 2}

    assert _exit_code(["checkpoints", "reset", "s1"]) == 0
    assert json.loads(capsys.readouterr().out) == {"subject_id": "s1", "removed": 2}


def test_checkpoints_stale_passes_age(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    captured: dict[str, object] = {}
    updated = datetime(2026, 1, 1, 9, 0, tzinfo=UTC)

    def fake_stale(*, older_than: timedelta | None) -> list[CheckpointRecord]:
        captured["older_than"] = older_than
        return [
            CheckpointRecord(
                subject_id="s1",
                step_name="research_primary",
                status=StepStatus.PROCESSING,
                attempts=2,
                created_at=updated,
                updated_at=updated,
            )
        ]

    monkeypatch.setattr(cli_module, "stale_checkpoints", fake_stale)

    assert _exit_code(["checkpoints", "stale", "--minutes", "15"]) == 0
    assert captured["older_than"] == timedelta(minutes=15)
    assert json.loads(capsys.readouterr().out) == [
        {
            "subject_id": "s1",
            "step": "research_primary",
            "attempts": 2,
            "updated_at": updated.isoformat(),
        }
    ]
