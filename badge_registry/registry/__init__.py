"""Membership lifecycle: schema, errors, custody, metadata, and the registry."""
