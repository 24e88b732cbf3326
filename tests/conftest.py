"""
pytest configuration and fixtures for the record schema compiler tests.

Provides:
- Import path for the modules under tools/
- Hypothesis property-based testing profiles
- Sample schemas in both input languages
"""

import os
import sys
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

# Configure Hypothesis profiles
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=200,
    deadline=None,
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=1000,
    deadline=None,
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=20,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


HEADER_SCHEMA = """\
; network header
format big
begin namespace net
begin type Header
u32 magic require == 0x1234
u8 name_len
string name length seen name_len
s16 delta
end
end
"""

HEADER_XML = """\
<spec>
  <format end="big"/>
  <namespace name="net">
    <type name="Header">
      <u32 name="magic"><require eq="0x1234"/></u32>
      <u8 name="name_len"/>
      <string name="name" length="$name_len"/>
      <s16 name="delta"/>
    </type>
  </namespace>
</spec>
"""


@pytest.fixture
def header_schema():
    return HEADER_SCHEMA


@pytest.fixture
def header_xml():
    return HEADER_XML


@pytest.fixture
def schema_file(tmp_path):
    """Write a schema to a temporary file and return its path."""
    def _write(text, name="schema.rec"):
        path = tmp_path / name
        path.write_text(text)
        return path
    return _write


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
