"""Conduit: article aggregation and mutation layer."""
