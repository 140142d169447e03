"""Utility packages for Schedule Bot."""
