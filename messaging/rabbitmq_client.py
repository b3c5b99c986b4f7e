# messaging/rabbitmq_client.py

import json
import logging
import threading
import time

import pika
from django.conf import settings

logger = logging.getLogger(__name__)

MEDIA_EXCHANGE = 'hotel_media_events'


class RabbitMQClient:
    """
    Publishes JSON events to one durable topic exchange.

    Each thread keeps its own blocking connection, and the exchange is declared
    once when that connection opens. A connection-level failure drops the
    connection and the publish is retried on a fresh one.
    """

    def __init__(self, exchange_name=MEDIA_EXCHANGE, max_retries=3, retry_delay=2):
        self.exchange_name = exchange_name
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._thread_local = threading.local()

    def _get_connection(self):
        connection = getattr(self._thread_local, 'connection', None)
        if connection is None or connection.is_closed:
            logger.info(f"Thread {threading.get_ident()}: opening RabbitMQ connection.")
            connection = pika.BlockingConnection(pika.URLParameters(settings.RABBITMQ_URL))
            with connection.channel() as channel:
                channel.exchange_declare(exchange=self.exchange_name, exchange_type='topic', durable=True)
            self._thread_local.connection = connection
        return connection

    def _invalidate_connection(self):
        connection = getattr(self._thread_local, 'connection', None)
        if connection is None:
            return
        del self._thread_local.connection
        if connection.is_open:
            try:
                connection.close()
            except pika.exceptions.AMQPError as e:
                logger.debug(f"Ignoring error while closing a broken connection: {e}")

    def publish(self, routing_key, body):
        """Publishes `body` as a persistent JSON message under `routing_key`."""
        for attempt in range(1, self.max_retries + 1):
            try:
                with self._get_connection().channel() as channel:
                    channel.basic_publish(
                        exchange=self.exchange_name,
                        routing_key=routing_key,
                        body=json.dumps(body, default=str),
                        properties=pika.BasicProperties(
                            content_type='application/json',
                            delivery_mode=pika.DeliveryMode.Persistent,
                        )
                    )
                logger.info(f"Published '{routing_key}' on attempt {attempt}.")
                return
            except (pika.exceptions.AMQPError, OSError) as e:
                logger.warning(f"Publish attempt {attempt} of '{routing_key}' failed: {e}")
                self._invalidate_connection()
                if attempt == self.max_retries:
                    logger.critical(f"Giving up on '{routing_key}' after {self.max_retries} attempts.")
                    raise
                time.sleep(self.retry_delay)


rabbitmq_client = RabbitMQClient()
