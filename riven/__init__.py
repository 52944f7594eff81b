"""Riven study streak service."""
