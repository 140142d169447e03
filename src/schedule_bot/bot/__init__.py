"""Discord-facing runtime components for Schedule Bot."""
