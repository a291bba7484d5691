"""pytest integration for workflow regression suites."""
