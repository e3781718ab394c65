"""Mission lifecycle and kilometrage core for a bus-transport fleet."""

__version__ = "0.1.0"
