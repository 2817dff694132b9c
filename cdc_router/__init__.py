"""CDC event router: forwards Debezium change events between Kafka topics by rule."""

__version__ = "1.0.0"
