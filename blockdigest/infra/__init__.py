"""Process-level infrastructure: the cluster worker service."""
