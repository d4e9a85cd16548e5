"""Lifecycle orchestration: locking, renewal decisions and the manager."""
