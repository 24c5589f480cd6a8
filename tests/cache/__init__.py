"""Tests for the watch based cache."""
