"""Captive-portal detection and login engine."""
