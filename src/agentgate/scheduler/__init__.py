"""Background scheduling of deferred sanctions."""
