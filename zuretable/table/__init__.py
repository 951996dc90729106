"""Table operations: descriptors, request builders, payload codec and client."""
