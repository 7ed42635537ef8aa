"""HTTP surface for serving level payloads."""
