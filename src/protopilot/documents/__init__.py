"""Document sessions and their synchronization with the remote store."""
