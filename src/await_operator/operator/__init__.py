"""Operator core: filter evaluation, resource resolution, Observers and the reconciler."""
