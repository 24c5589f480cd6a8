"""Tests for cluster-mirror."""
