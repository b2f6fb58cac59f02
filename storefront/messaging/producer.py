import json
import logging
import threading

import pika

logger = logging.getLogger(__name__)


class RabbitMQProducer:
    """
    Publishes order events to a topic exchange.

    Consumers downstream (e.g. the mailer) subscribe with routing keys such as
    'order.created' or 'order.cancelled'. A connection is opened lazily and
    reopened if it was lost.
    """

    def __init__(self, host, exchange_name="events", exchange_type="topic", credentials=None):
        self.host = host
        self.exchange_name = exchange_name
        self.exchange_type = exchange_type
        self.credentials = credentials or pika.PlainCredentials("guest", "guest")
        self.connection = None
        self.channel = None
        # BlockingConnection is not thread-safe; requests publish from worker threads.
        self._lock = threading.Lock()

    def connect(self):
        """Establishes a connection and declares the durable exchange."""
        parameters = pika.ConnectionParameters(
            host=self.host,
            credentials=self.credentials,
            heartbeat=600,
            blocked_connection_timeout=300,
        )
        self.connection = pika.BlockingConnection(parameters)
        self.channel = self.connection.channel()
        self.channel.exchange_declare(
            exchange=self.exchange_name,
            exchange_type=self.exchange_type,
            durable=True,
        )
        logger.info(f"Connected to RabbitMQ exchange '{self.exchange_name}' on {self.host}")

    def publish(self, routing_key, message):
        """
        Publishes a persistent JSON message.

        Args:
            routing_key (str): The topic key (e.g., 'order.created').
            message (dict): The data payload to send.
        """
        with self._lock:
            if not self.connection or self.connection.is_closed:
                self.connect()
            self._publish(routing_key, message)

    def _publish(self, routing_key, message):
        self.channel.basic_publish(
            exchange=self.exchange_name,
            routing_key=routing_key,
            body=json.dumps(message, default=str),
            properties=pika.BasicProperties(
                delivery_mode=2,  # Make message persistent
                content_type="application/json",
            ),
        )
        logger.debug(f"Sent event '{routing_key}' for order {message.get('orderId')}")

    def close(self):
        """Closes the connection cleanly."""
        if self.connection and not self.connection.is_closed:
            self.connection.close()
