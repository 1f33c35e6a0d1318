"""Service layer: settings, site configuration, stores, and remote clients."""
