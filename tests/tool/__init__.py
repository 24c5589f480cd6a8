"""Tests for the cluster-mirror command line tool."""
