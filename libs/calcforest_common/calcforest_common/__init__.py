"""Shared helpers for calcforest services."""
