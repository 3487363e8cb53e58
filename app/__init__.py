"""HyLaunch application package."""
