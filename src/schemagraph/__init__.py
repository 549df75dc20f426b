"""Schema crawling and property-graph unification for heterogeneous data sources."""

__version__ = "0.1.0"
