"""Commission and performance engine for the marketplace referral program."""

__version__ = "1.0.0"
