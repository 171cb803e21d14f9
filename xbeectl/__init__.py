"""Host-side driver for XBee radios in API frame mode."""

__version__ = "0.1.0"
