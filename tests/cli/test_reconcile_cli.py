import sys

import pytest

from moonstore.cli.reconcile import __main__ as reconcile_cli
from moonstore.instances.config import settings
from moonstore.instances.storage import get_storage
from moonstore.services.reconcile import CleanupReport, ReconcileReport, RefreshReport
from moonstore.services.storage import StorageService


def test_print_report(capsys: pytest.CaptureFixture[str]) -> None:
    report = ReconcileReport(
        started_at=1,
        refresh=RefreshReport(users=3, play_records_updated=2),
        cleanup=CleanupReport(enabled=True, checked=3, deleted=["alice"]),
    )

    reconcile_cli.print_report(report)

    output = capsys.readouterr().out
    assert "3 users" in output
    assert "Deleted: alice" in output


def test_print_report_disabled_cleanup(capsys: pytest.CaptureFixture[str]) -> None:
    reconcile_cli.print_report(ReconcileReport(started_at=1, refresh=RefreshReport(error="down")))

    output = capsys.readouterr().out
    assert "error: down" in output
    assert "disabled" in output


async def test_run_once_closes_storage(global_storage: StorageService, mocker) -> None:
    close = mocker.patch.object(global_storage, "close")

    report = await reconcile_cli.run_once()

    assert report.refresh.users == 0
    close.assert_awaited_once()
    # TEST: The global storage is cleared after the run
    assert get_storage() is not global_storage


async def test_run_once_closes_storage_on_failure(global_storage: StorageService, mocker) -> None:
    close = mocker.patch.object(global_storage, "close")
    mocker.patch.object(reconcile_cli, "build_orchestrator", side_effect=RuntimeError("bad config"))

    with pytest.raises(RuntimeError, match="bad config"):
        await reconcile_cli.run_once()

    close.assert_awaited_once()


def test_main_exit_code(mocker, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(sys, "argv", ["moonstore-reconcile", "-v"])
    monkeypatch.setattr(settings.logging, "level", settings.logging.level)
    mocker.patch.object(reconcile_cli, "setup_logger")
    mocker.patch.object(reconcile_cli, "run_once", new=mocker.AsyncMock(return_value=ReconcileReport(started_at=1)))

    with pytest.raises(SystemExit) as exc_info:
        reconcile_cli.main()
    assert exc_info.value.code == 0

    failed = ReconcileReport(started_at=1, cleanup=CleanupReport(error="down"))
    mocker.patch.object(reconcile_cli, "run_once", new=mocker.AsyncMock(return_value=failed))
    with pytest.raises(SystemExit) as exc_info:
        reconcile_cli.main()
    assert exc_info.value.code == 1


def test_main_missing_config(mocker, monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.setattr(sys, "argv", ["moonstore-reconcile", "--config", str(tmp_path / "nope.json")])
    run_once = mocker.patch.object(reconcile_cli, "run_once")

    with pytest.raises(SystemExit) as exc_info:
        reconcile_cli.main()

    assert exc_info.value.code == 1
    run_once.assert_not_called()
