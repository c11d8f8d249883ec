"""HTTP surface of the challenge scheduler."""
