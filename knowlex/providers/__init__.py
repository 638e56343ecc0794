"""Concrete implementations of the interfaces in :mod:`knowlex.interfaces`."""
