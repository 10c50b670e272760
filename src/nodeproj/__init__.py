"""Analyzer lifecycle and external-tool reconciliation for Node.js projects."""

__version__ = "0.1.0"
