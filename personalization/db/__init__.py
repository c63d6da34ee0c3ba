"""SQLAlchemy persistence for gate states, usage patterns and the event archive."""
