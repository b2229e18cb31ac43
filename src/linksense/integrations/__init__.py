"""Provider integrations: OAuth connect flows, token encryption and data adapters."""
