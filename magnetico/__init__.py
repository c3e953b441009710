"""Torrent metadata storage (SQLite, PostgreSQL, ZeroMQ) and a WSGI web interface and API."""

__version__ = "0.1.0"