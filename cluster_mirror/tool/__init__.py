"""Command line tool for cluster-mirror."""
