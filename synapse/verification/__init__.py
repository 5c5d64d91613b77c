"""Claim verification package (extract -> search -> score)."""
