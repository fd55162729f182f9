"""BiblioTech - school library loan tracking."""

__version__ = "0.1.0"
