"""Routers for the Flowport JSON API."""
