"""Streaming ingestion of uploaded tabular files into a relational store."""

__version__ = "0.1.0"
