"""Clustering stages operating on the object store."""
