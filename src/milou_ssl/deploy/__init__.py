"""Injection of certificate material into the running reverse proxy."""
