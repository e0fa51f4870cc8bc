"""HTTP surface of the settlement gateway."""
