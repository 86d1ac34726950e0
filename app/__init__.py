"""Goalpost: goal tracking API with a Redis read-through cache."""

__version__ = "0.4.0"
