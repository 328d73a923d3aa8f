import json
from datetime import date

import pytest

from cycle_tracker.database import RecordStore
from cycle_tracker.main import build_parser, main
from cycle_tracker.models import DailyRecord


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"data_dir": str(tmp_path / "data")}), encoding="utf-8")
    return path


def run(config_path, *args):
    with pytest.raises(SystemExit) as excinfo:
        main(["--config", str(config_path), *args])
    return excinfo.value.code


def test_parser_defaults_to_tray():
    assert build_parser().parse_args([]).command is None
    assert build_parser().parse_args(["restore", "a.csv", "b.csv"]).files == ["a.csv", "b.csv"]


def test_where_prints_store_location(config_path, tmp_path, capsys):
    assert run(config_path, "where") == 0

    out = capsys.readouterr().out.strip().splitlines()[-1]
    assert out == str((tmp_path / "data" / "cycle_history.db").resolve())


def test_export_then_restore(config_path, tmp_path, capsys):
    store = RecordStore(str(tmp_path / "data" / "cycle_history.db"))
    store.put(DailyRecord(date=date(2026, 3, 1), cycles=2).with_breakdown(900.0, False, 18.0))

    assert run(config_path, "export", str(tmp_path / "backup")) == 0
    store.delete_all()

    assert run(
        config_path, "restore",
        str(tmp_path / "backup" / "ZDAILYCYCLE.csv"),
        str(tmp_path / "backup" / "ZCYCLEBREAKDOWN.csv"),
    ) == 0

    assert "Restored 1 daily rows and 1 breakdown rows." in capsys.readouterr().out
    assert store.get(date(2026, 3, 1)).cycles == 2


def test_restore_reports_format_error(config_path, tmp_path, capsys):
    bad = tmp_path / "ZDAILYCYCLE.csv"
    bad.write_text("Z_PK\n1\n", encoding="utf-8")

    assert run(config_path, "restore", str(bad)) == 2
    assert "ZDATE" in capsys.readouterr().err


def test_plot_writes_png(config_path, tmp_path):
    assert run(config_path, "plot", str(tmp_path / "chart.png"), "--days", "7") == 0
    assert (tmp_path / "chart.png").exists()


def test_restore_reports_undecodable_file(config_path, tmp_path, capsys):
    bad = tmp_path / "ZDAILYCYCLE.csv"
    bad.write_bytes(b"Z_PK,ZDATE\n1,\xff\xfe\x80\n")

    assert run(config_path, "restore", str(bad)) == 2
    assert "Could not read ZDAILYCYCLE.csv" in capsys.readouterr().err
