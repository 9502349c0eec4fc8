"""
Connectors module - Kafka consumer and producer.
"""
