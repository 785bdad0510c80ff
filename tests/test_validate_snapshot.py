#!/usr/bin/env python3
"""Tests for validate_snapshot schema validation."""

from validate_snapshot import main, validate_snapshot_file
from fleetops.loader import load_schema

VALID_SNAPSHOT = """
version: 1
state:
  vehicles:
    - id: v1
      licensePlate: AB-123-CD
      brand: Renault
      model: Clio
      year: 2021
      status: active
  garageRecords:
    - id: g1
      vehicleId: v1
      type: repair
      status: in_progress
      repairs:
        - description: Brake pads
          laborHours: 1.5
          parts:
            - partId: p1
              quantity: 2
"""


class TestValidateSnapshotFile:
    """Tests for validate_snapshot_file function."""

    def test_valid_returns_no_errors(self, tmp_path):
        path = tmp_path / "valid.yaml"
        path.write_text(VALID_SNAPSHOT)
        assert validate_snapshot_file(path, load_schema()) == []

    def test_empty_state_is_valid(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("version: 1\nstate: {}\n")
        assert validate_snapshot_file(path, load_schema()) == []

    def test_missing_version(self, tmp_path):
        path = tmp_path / "no_version.yaml"
        path.write_text("state: {}\n")
        errors = validate_snapshot_file(path, load_schema())
        assert len(errors) == 1
        assert "version" in errors[0]

    def test_bad_status_reports_path(self, tmp_path):
        path = tmp_path / "bad_status.yaml"
        path.write_text(VALID_SNAPSHOT.replace("status: active", "status: parked"))
        errors = validate_snapshot_file(path, load_schema())
        assert errors[0].startswith("Schema validation error")
        assert errors[1] == "  at path: state.vehicles.0.status"

    def test_negative_labor_hours(self, tmp_path):
        path = tmp_path / "negative.yaml"
        path.write_text(VALID_SNAPSHOT.replace("laborHours: 1.5", "laborHours: -1"))
        assert validate_snapshot_file(path, load_schema()) != []

    def test_unsupported_version(self, tmp_path):
        path = tmp_path / "future.yaml"
        path.write_text("version: 7\nstate: {}\n")
        errors = validate_snapshot_file(path, load_schema())
        assert errors == ["Unsupported snapshot version 7 (expected 1)"]

    def test_yaml_parse_error(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("version: 1\nstate: [unclosed\n")
        errors = validate_snapshot_file(path, load_schema())
        assert errors[0].startswith("YAML parse error")

    def test_missing_file(self, tmp_path):
        errors = validate_snapshot_file(tmp_path / "absent.yaml", load_schema())
        assert errors[0].startswith("Error:")


class TestMain:
    """Tests for the validate_snapshot entry point."""

    def test_scans_data_dir(self, tmp_path, capsys):
        (tmp_path / "fleet.yaml").write_text(VALID_SNAPSHOT)
        assert main(["--data-dir", str(tmp_path)]) == 0
        assert "OK: fleet.yaml" in capsys.readouterr().out

    def test_reports_failures(self, tmp_path, capsys):
        path = tmp_path / "bad.yaml"
        path.write_text("state: {}\n")
        assert main([str(path)]) == 1
        assert "FAIL: bad.yaml" in capsys.readouterr().out

    def test_missing_data_dir(self, tmp_path):
        assert main(["--data-dir", str(tmp_path / "absent")]) == 1

    def test_empty_data_dir(self, tmp_path):
        assert main(["--data-dir", str(tmp_path)]) == 0
