"""Tests for the command-line interface."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from typer.testing import CliRunner

from student_context.cli import app
from student_context.database import DatabaseConnectionError, PostgresRecordStore


runner = CliRunner()


DATA = {
    "students": [
        {"id": "s1", "student_number": "1000001", "first_name": "Jane", "last_name": "Doe", "grade": "3"},
        {"id": "s2", "first_name": "John", "last_name": "Smith", "grade": "3"},
    ],
    "attendance": (
        [{"student_id": "s1", "date": f"2024-10-{day:02d}", "status": "present"} for day in range(1, 9)]
        + [{"student_id": "s1", "date": "2024-10-09", "status": "absent"},
           {"student_id": "s1", "date": "2024-10-10", "status": "absent"}]
    ),
    "grades": [
        {"student_id": "s1", "course": "Math", "grades": [{"period": "Q1", "grade": "72"}, {"period": "Q2", "grade": "80"}]},
    ],
    "flag_rules": [
        {"name": "Low attendance", "category": "attendance", "threshold": 90},
    ],
}


@pytest.fixture
def data_file(tmp_path):
    path = tmp_path / "records.json"
    path.write_text(json.dumps(DATA))
    return path


class TestCli:

    def test_version(self):
        result = runner.invoke(app, ["version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_retrieve_json(self, data_file):
        result = runner.invoke(app, [
            "retrieve", "How is 'Jane Doe' doing?",
            "--data", str(data_file), "--json", "--reference-date", "2024-10-15",
        ])
        assert result.exit_code == 0
        assert '"query_type": "individual"' in result.output
        assert '"flag_name": "Low attendance"' in result.output

    def test_retrieve_summary(self, data_file):
        result = runner.invoke(app, [
            "retrieve", "How is 'Jane Doe' doing?",
            "--data", str(data_file), "--reference-date", "2024-10-15",
        ])
        assert result.exit_code == 0
        assert "Student Data Context" in result.output
        assert "Low attendance" in result.output
        assert "Student s1" in result.output

    def test_flag_file_overrides_bundled_rules(self, data_file, tmp_path):
        flags = tmp_path / "flags.yaml"
        flags.write_text("- name: Any grades\n  category: grades\n  threshold: 4.0\n")
        result = runner.invoke(app, [
            "retrieve", "How is 'Jane Doe' doing?",
            "--data", str(data_file), "--flags", str(flags), "--json",
        ])
        assert result.exit_code == 0
        assert "Any grades" in result.output
        assert "Low attendance" not in result.output

    def test_profile(self, data_file):
        result = runner.invoke(app, ["profile", "s1", "--data", str(data_file), "--reference-date", "2024-10-15"])
        assert result.exit_code == 0
        assert "Student s1" in result.output
        assert "Overall risk" in result.output

    def test_profile_unknown_student(self, data_file):
        result = runner.invoke(app, ["profile", "s99", "--data", str(data_file)])
        assert result.exit_code == 1
        assert "No matching students" in result.output

    def test_bad_data_file(self, tmp_path):
        path = tmp_path / "broken.json"
        path.write_text("{")
        result = runner.invoke(app, ["retrieve", "Anyone absent?", "--data", str(path)])
        assert result.exit_code == 1
        assert "Retrieval failed" in result.output

    def test_no_data_source(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        result = runner.invoke(app, ["retrieve", "Anyone absent?"])
        assert result.exit_code != 0

    def test_database_store_connection_failure(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://app:pw@localhost:5432/school")
        with patch(
            "student_context.cli.create_postgres_store",
            AsyncMock(side_effect=DatabaseConnectionError("Failed to initialize record store pool")),
        ):
            result = runner.invoke(app, ["retrieve", "Anyone absent?"])
        assert result.exit_code == 1
        assert "Retrieval failed" in result.output

    def test_database_store_pool_is_closed(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://app:pw@localhost:5432/school")
        pool = MagicMock()
        pool.close = AsyncMock()
        pool.execute_query = AsyncMock(return_value=[])
        store = PostgresRecordStore(pool)
        store.get_students = AsyncMock(return_value=[])
        store.roster_version = AsyncMock(return_value="0:none")
        with patch("student_context.cli.create_postgres_store", AsyncMock(return_value=store)) as create:
            result = runner.invoke(app, ["retrieve", "Anyone absent?", "--json"])

        assert result.exit_code == 0
        create.assert_awaited_once()
        pool.close.assert_awaited_once()
