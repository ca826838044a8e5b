"""Drive HTTP-backed accessory attributes from declarative configuration."""

__version__ = "0.1.0"
