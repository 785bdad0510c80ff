#!/usr/bin/env python3
"""Validate fleet snapshot YAML files against the schema."""
import argparse
import sys
from pathlib import Path

import yaml
from jsonschema import validate, ValidationError

from fleetops import Settings
from fleetops.config import SCHEMA_VERSION
from fleetops.loader import load_schema


def validate_snapshot_file(filepath: Path, schema: dict) -> list[str]:
    """Validate a single snapshot YAML file. Returns list of errors."""
    errors = []
    try:
        with open(filepath) as f:
            data = yaml.safe_load(f)
        validate(instance=data, schema=schema)
        if data["version"] != SCHEMA_VERSION:
            errors.append(
                f"Unsupported snapshot version {data['version']} (expected {SCHEMA_VERSION})"
            )
    except yaml.YAMLError as e:
        errors.append(f"YAML parse error: {e}")
    except ValidationError as e:
        errors.append(f"Schema validation error: {e.message}")
        if e.path:
            errors.append(f"  at path: {'.'.join(str(p) for p in e.path)}")
    except OSError as e:
        errors.append(f"Error: {e}")
    return errors


def main(argv=None):
    """Validate the given snapshot files, or every YAML file in the data directory."""
    settings = Settings.from_env()
    parser = argparse.ArgumentParser(description="Validate fleet snapshot files")
    parser.add_argument("files", nargs="*", type=Path, help="Snapshot files to check")
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=settings.data_dir,
        help=f"Directory scanned when no files are given (default: {settings.data_dir})",
    )
    args = parser.parse_args(argv)

    schema = load_schema()
    yaml_files = args.files
    if not yaml_files:
        if not args.data_dir.exists():
            print(f"Error: data directory not found: {args.data_dir}")
            return 1
        yaml_files = list(args.data_dir.glob("*.yaml")) + list(args.data_dir.glob("*.yml"))

    if not yaml_files:
        print(f"Warning: No YAML files found in {args.data_dir}")
        return 0

    all_valid = True
    for filepath in sorted(yaml_files):
        errors = validate_snapshot_file(filepath, schema)
        if errors:
            print(f"FAIL: {filepath.name}")
            for error in errors:
                print(f"  {error}")
            all_valid = False
        else:
            print(f"OK: {filepath.name}")

    return 0 if all_valid else 1


if __name__ == "__main__":
    sys.exit(main())
