"""compgraph: resolves Crossplane and KRO composition graphs."""

__version__ = "0.1.0"
