"""JSON API over the migration service, served by ``flowport serve``."""
