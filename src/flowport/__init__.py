"""Flowport - move helpdesk Flow configurations between accounts."""

__version__ = "0.1.0"
