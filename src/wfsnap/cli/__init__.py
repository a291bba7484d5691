"""Command line interface for wfsnap."""
