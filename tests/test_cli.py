import json

from typer.testing import CliRunner

from debriefer.config import settings
from debriefer.main import cli

runner = CliRunner()


def test_version():
    result = runner.invoke(cli, ["version"])
    assert result.exit_code == 0
    assert settings.app.version in result.output


def test_seed_catalog_then_summary(tmp_path, db, mission):
    units = tmp_path / "units.yaml"
    units.write_text(
        "- type_name: BMP-2\n  display_name: BMP-2 IFV\n  kill_category: A2G\n"
        "- type_name: Ka-50\n  display_name: Ka-50 Hokum\n  category: HELICOPTER\n  kill_category: A2A\n",
        encoding="utf-8",
    )

    seeded = runner.invoke(cli, ["seed-catalog", str(units), "--db", str(db.db_path)])
    assert seeded.exit_code == 0
    assert "Seeded 2 of 2" in seeded.output

    again = runner.invoke(cli, ["seed-catalog", str(units), "--db", str(db.db_path)])
    assert "Seeded 0 of 2" in again.output

    summary = runner.invoke(cli, ["summary", mission.debrief_id, "--db", str(db.db_path)])
    assert summary.exit_code == 0
    payload = json.loads(summary.output)
    assert payload["total_slots"] == 8
    assert payload["pilot_status"]["unaccounted"] == 8


def test_seed_catalog_reports_bad_file(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text("{not json", encoding="utf-8")

    result = runner.invoke(cli, ["seed-catalog", str(bad), "--db", str(tmp_path / "x.db")])
    assert result.exit_code == 1
