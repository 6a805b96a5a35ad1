"""Version Metadata."""

__version__ = "0.4.0"  # This is the version of the app, used in pyproject.toml, enforced in a test.
PROGRAM_NAME = "MoonStore"
