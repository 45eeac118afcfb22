"""Badge Registry — membership badges with tiers, expiry, and transfer."""

__version__ = "0.1.0"
