"""Painel DSS: daily safety-briefing attendance panel API."""

__version__ = "0.1.0"
