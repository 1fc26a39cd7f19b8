"""INIQ — declarative host initialization."""

__version__ = "0.1.0"
