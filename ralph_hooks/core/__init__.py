"""Shared hook plumbing: config, logging, metrics and the fail-open wrapper."""
