"""Filesystem storage: path resolution, atomic writes and backups."""
