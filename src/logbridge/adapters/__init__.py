"""Adapters connecting the core to storage backends, web frameworks and producers."""
