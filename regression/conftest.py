"""Workflow regression suite: run with ``pytest regression``."""

from wfsnap.testing.plugin import *  # noqa: F403
