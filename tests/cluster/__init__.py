"""Tests for the cluster api clients."""
