"""
Pytest configuration and fixtures for Template Sync tests.

Shared fixtures for unit and integration tests: a scratch working
directory, realistic capture text and a watch manager whose observer
never starts.
"""

from pathlib import Path
from unittest.mock import MagicMock

import pytest

from template_sync.watcher import WatchManager


CAPTURE_URL = "https://1234567.app.netsuite.com/app/common/custom/advancedprint/pdftemplate.nl"


def make_capture(body: str, method: str = "POST") -> str:
    """Return a browser 'Copy as fetch' capture with *body*."""
    return f"""fetch("{CAPTURE_URL}", {{
  "headers": {{
    "accept": "application/json, text/javascript, */*; q=0.01",
    "content-type": "application/x-www-form-urlencoded; charset=UTF-8",
    "x-requested-with": "XMLHttpRequest"
  }},
  "referrer": "https://1234567.app.netsuite.com/app/common/custom/advancedprint/pdftemplate.nl?id=105",
  "referrerPolicy": "strict-origin-when-cross-origin",
  "body": "{body}",
  "method": "{method}",
  "mode": "cors",
  "credentials": "include"
}});
"""


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Return an empty working directory."""
    return tmp_path


@pytest.fixture
def capture_body() -> str:
    """Return a typical captured save body."""
    return (
        "action=SAVE_EDIT&id=105&name=Invoice%20PDF"
        "&template=%3Cpdf%3Eold%3C%2Fpdf%3E&source-template=%3Cold%2F%3E&wysiwyg-template=x"
    )


@pytest.fixture
def capture_text(capture_body: str) -> str:
    """Return a complete capture for *capture_body*."""
    return make_capture(capture_body)


@pytest.fixture
def observer() -> MagicMock:
    """Return a stand-in for the watchdog observer."""
    return MagicMock(name="Observer")


@pytest.fixture
def watches(observer: MagicMock) -> WatchManager:
    """Return a watch manager that never touches the real file system API."""
    return WatchManager(debounce_seconds=0, observer=observer)


@pytest.fixture(name="make_capture")
def make_capture_fixture():
    """Return the capture builder for tests that need custom bodies."""
    return make_capture
