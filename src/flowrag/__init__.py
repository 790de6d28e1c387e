"""flowrag — assemble and run retrieval-augmented generation pipelines as stage graphs."""

__version__ = "0.1.0"
