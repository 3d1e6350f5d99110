"""Fetch IQ Server policy violation reports into one consolidated CSV."""

__version__ = "0.1.0"
