"""SSS backend: supervision policies, URL decisions and device commands."""
