"""Domain logic: admission, dedup, correlation and retention."""
