"""Sustainability scoring for food products: feature encoding, an MLP trained
offline, a dependency-free inference runtime and a three-tier prediction
cascade."""

__version__ = "0.4.0"
