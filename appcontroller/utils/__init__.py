"""Logging, configuration, error and environment helpers."""
