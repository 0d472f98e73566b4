"""Group chat and moderation backend."""
