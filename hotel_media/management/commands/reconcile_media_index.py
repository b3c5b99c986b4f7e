# hotel_media/management/commands/reconcile_media_index.py

import json
import logging

from django.core.management.base import BaseCommand, CommandError
from rest_framework.exceptions import APIException

from hotel_media.exceptions import TransientIOError
from hotel_media.services import MediaPipelineService
from messaging.event_publisher import media_event_publisher

logging.basicConfig(level=logging.INFO, format='%(asctime)s - HotelMedia-Reconcile - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)


class Command(BaseCommand):
    """
    Rebuilds the media index from storage. Without --external-id every folder
    of both tiers is swept and upserted; with it, each listed hotel gets a
    replace-all rebuild (inline, or queued for the reconcile worker).
    """
    help = 'Rebuilds the hotel media index from object storage.'

    def add_arguments(self, parser):
        parser.add_argument('--dry-run', action='store_true', help='Scan and report without writing.')
        parser.add_argument('--external-id', action='append', dest='external_ids', default=[],
                            help='Rebuild only this hotel. May be repeated.')
        parser.add_argument('--queue', action='store_true',
                            help='Publish reconcile requests instead of rebuilding inline.')

    def handle(self, *args, **options):
        external_ids = options['external_ids']
        if options['queue']:
            if not external_ids:
                raise CommandError("--queue needs at least one --external-id.")
            for external_id in external_ids:
                media_event_publisher.request_reconcile(external_id)
            self.stdout.write(self.style.SUCCESS(f"Queued {len(external_ids)} reconcile request(s)."))
            return

        service = MediaPipelineService()
        try:
            if not external_ids:
                result = service.reconcile_all(dry_run=options['dry_run']).to_dict()
                self.stdout.write(json.dumps(result, indent=2, default=str))
                self.stdout.write(self.style.SUCCESS(
                    f"Processed {result['records_processed']} record(s): {result['inserted']} inserted, "
                    f"{result['updated']} updated, {len(result['errors'])} error(s)."
                ))
                return

            if options['dry_run']:
                raise CommandError("--dry-run only applies to the full sweep.")
            for external_id in external_ids:
                result = service.reconcile_one(external_id)
                self.stdout.write(self.style.SUCCESS(
                    f"{external_id}: {result.created} row(s), {result.seq_extracted} with sequence, "
                    f"{result.seq_failed} without."
                ))
        except (APIException, TransientIOError) as e:
            logger.error(f"Reconcile failed: {e}", exc_info=True)
            raise CommandError(str(e))
