"""End-to-end CLI tests run against in-process fake capabilities."""
