"""Gavel command line interface."""
