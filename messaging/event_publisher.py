# messaging/event_publisher.py

import logging

import pika

from .rabbitmq_client import rabbitmq_client

logger = logging.getLogger(__name__)

MEDIA_CHANGED = 'hotel.media.changed'
RECONCILE_REQUESTED = 'hotel.media.reconcile.requested'


class MediaEventPublisher:
    def __init__(self, client=None):
        self.client = client or rabbitmq_client

    def publish_media_changed(self, *, external_id: str, slug: str, action: str, version: int = None):
        """
        Tells caches and page builders that a hotel's images changed. A lost
        event is logged and never fails the change that caused it.
        """
        payload = {
            "external_id": str(external_id),
            "slug": slug,
            "action": action,
            "version": version,
            "service_name": "HotelMediaService",
        }
        try:
            self.client.publish(routing_key=MEDIA_CHANGED, body=payload)
        except (pika.exceptions.AMQPError, OSError) as e:
            logger.critical(f"Lost '{MEDIA_CHANGED}' event for {slug} ({action}): {e}")

    def request_reconcile(self, external_id: str):
        logger.info(f"Requesting index reconcile for {external_id}")
        self.client.publish(routing_key=RECONCILE_REQUESTED, body={"external_id": str(external_id)})


media_event_publisher = MediaEventPublisher()
