"""scopegraph: change-impact scope detection, data-flow analysis and entity references."""

__version__ = "0.3.0"
