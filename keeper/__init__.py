"""Conditional order keeper for the vault program."""
