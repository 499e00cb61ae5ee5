"""Presentation services built on top of the login engine."""
