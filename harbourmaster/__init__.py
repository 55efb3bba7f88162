"""Harbourmaster: a local control plane between a web API and the Docker socket."""

__version__ = "0.1.0"
