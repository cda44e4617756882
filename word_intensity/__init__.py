"""Word intensity survey: response collection and reliable submission."""

__version__ = "0.1.0"
