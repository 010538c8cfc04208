"""Shared hooks for the kvsearch unit suite.

Everything under ``tests/unit`` runs against temporary SQLite files and mocked
boto3 clients, so each collected test is tagged ``unit`` without repeating the
marker in every module.
"""

from pathlib import Path

import pytest


UNIT_ROOT = Path(__file__).resolve().parent


def pytest_collection_modifyitems(config, items):
    for item in items:
        if UNIT_ROOT in Path(item.fspath).resolve().parents:
            item.add_marker(pytest.mark.unit)
