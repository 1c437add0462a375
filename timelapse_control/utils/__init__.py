"""Conversion and report formatting helpers."""
