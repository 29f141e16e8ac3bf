"""Profiles, configuration and background daemon processes for container runtimes in a Lima VM."""

__version__ = "0.1.0"