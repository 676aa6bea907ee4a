"""
Shared pytest fixtures for the knighted_css test suite.

Usage in tests:
    def test_something(project):
        entry = project.write("src/index.ts", "import './card.css'")
        # ... compile against real files under tmp_path
"""

import pytest
from tests.factories import ProjectFactory


@pytest.fixture
def project(tmp_path, monkeypatch):
    """
    Create an empty ProjectFactory rooted at tmp_path.

    Environment variables read by the config layer are cleared so the host
    environment cannot leak into tests.
    """
    for name in ("KNIGHTED_CSS_STABLE_NAMESPACE", "KNIGHTED_CSS_MINIFY", "KNIGHTED_CSS_DEBUG_SASS"):
        monkeypatch.delenv(name, raising=False)
    return ProjectFactory(tmp_path)
