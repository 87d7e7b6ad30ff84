"""HeroTime API - AI hero-image generation with subscription billing."""

__version__ = "0.3.0"
