"""CLI module for tokentrim."""
