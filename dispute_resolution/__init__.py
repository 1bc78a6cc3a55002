"""Dispute resolution for a print-on-demand marketplace."""

__version__ = "0.1.0"
