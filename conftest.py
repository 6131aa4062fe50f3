"""Shared pytest fixtures for coursebook."""

import json
import pytest
from pathlib import Path


BASE_DIR = Path(__file__).parent


@pytest.fixture
def shipped_course_data():
    with open(BASE_DIR / "data" / "course_data.json", encoding="utf-8") as f:
        return json.load(f)
