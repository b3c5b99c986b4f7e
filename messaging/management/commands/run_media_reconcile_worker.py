# messaging/management/commands/run_media_reconcile_worker.py

import json
import logging
import time

import pika
from django.conf import settings
from django.core.management.base import BaseCommand

from hotel_media.services import MediaPipelineService
from messaging.event_publisher import RECONCILE_REQUESTED
from messaging.rabbitmq_client import MEDIA_EXCHANGE

logging.basicConfig(level=logging.INFO, format='%(asctime)s - HotelMedia-ReconcileWorker - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

QUEUE_NAME = 'hotel_media_reconcile_queue'


def handle_reconcile_request(external_id: str, service: MediaPipelineService = None):
    """
    Replace-all rebuild of one hotel's index rows. Safe to repeat: every run
    ends with exactly the rows storage justifies.
    """
    logger.info(f"--- Index rebuild requested for {external_id} ---")
    service = service or MediaPipelineService()
    try:
        result = service.reconcile_one(external_id)
        logger.info(
            f"--- Index rebuild finished for {external_id}: {result.created} row(s), "
            f"{result.seq_failed} without sequence ---"
        )
        return result
    except Exception as e:
        logger.critical(f"CRITICAL ERROR while rebuilding the index for {external_id}: {e}", exc_info=True)
        return None


class Command(BaseCommand):
    """
    Runs a RabbitMQ worker that listens for `hotel.media.reconcile.requested`
    events and rebuilds the index of the named hotel.
    """
    help = 'Runs the hotel media index reconcile worker.'

    def handle(self, *args, **options):
        rabbitmq_url = settings.RABBITMQ_URL
        self.stdout.write(self.style.SUCCESS("--- Hotel Media Reconcile Worker ---"))
        self.stdout.write(f"Connecting to RabbitMQ at {rabbitmq_url}...")

        while True:
            try:
                connection = pika.BlockingConnection(pika.URLParameters(rabbitmq_url))
                channel = connection.channel()
                channel.exchange_declare(exchange=MEDIA_EXCHANGE, exchange_type='topic', durable=True)
                channel.queue_declare(queue=QUEUE_NAME, durable=True)
                channel.queue_bind(exchange=MEDIA_EXCHANGE, queue=QUEUE_NAME, routing_key=RECONCILE_REQUESTED)
                # One hotel at a time; rebuilds of the same hotel must not overlap.
                channel.basic_qos(prefetch_count=1)

                self.stdout.write(self.style.SUCCESS('\n [*] Worker is now waiting for reconcile requests.'))
                channel.basic_consume(queue=QUEUE_NAME, on_message_callback=self.callback)
                channel.start_consuming()

            except pika.exceptions.AMQPConnectionError as e:
                self.stderr.write(self.style.ERROR(f'Connection to RabbitMQ failed: {e}. Retrying in 5 seconds...'))
                time.sleep(5)
            except KeyboardInterrupt:
                self.stdout.write(self.style.WARNING('\nWorker stopped by user.'))
                break

    def callback(self, ch, method, properties, body):
        try:
            payload = json.loads(body)
            external_id = payload.get('external_id')
            if external_id:
                handle_reconcile_request(str(external_id))
            else:
                logger.warning(f"Received message without an external_id. Discarding: {body}")
        except json.JSONDecodeError:
            logger.error(f"Could not decode message body. Discarding: {body}", exc_info=True)

        ch.basic_ack(delivery_tag=method.delivery_tag)
