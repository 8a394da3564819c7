"""flashstake - yield tokenization engine with early-redemption accounting."""

__version__ = "0.3.0"
