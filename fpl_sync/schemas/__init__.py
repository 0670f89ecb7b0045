"""Wire schemas for external API payloads."""
