"""Generator catalog, selection memory and request dispatch."""
