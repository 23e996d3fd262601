"""Spaced-repetition review scheduling for K-12 learners."""

__version__ = "0.1.0"
