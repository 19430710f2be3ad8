"""HTTP surface for the dispatcher."""
