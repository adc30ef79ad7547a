"""Wire encoders for record streams."""
