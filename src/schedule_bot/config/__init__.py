"""Configuration loading and validation for Schedule Bot."""
