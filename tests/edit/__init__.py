"""Tests for the edit workflow."""
