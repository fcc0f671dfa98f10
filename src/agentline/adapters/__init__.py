"""OS-level adapters."""
