"""POS analytics service: customer analytics, basket rules and recommendations."""

__version__ = "1.0.0"
