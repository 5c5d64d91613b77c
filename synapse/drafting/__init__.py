"""Document drafting package (offer letters)."""
