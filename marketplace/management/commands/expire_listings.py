# Expire Listings Management Command
import logging

from django.core.management.base import BaseCommand
from django.utils import timezone

from marketplace import services
from marketplace.exceptions import MarketplaceError
from marketplace.models import StampListing

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Moves open listings past their expiry date to expired, reversing offer balances where needed.'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='List the listings that would expire without changing them.',
        )
        parser.add_argument(
            '--batch-size',
            type=int,
            default=500,
            help='Number of listings fetched per query.',
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        batch_size = options['batch_size']
        now = timezone.now()

        listings = StampListing.objects.filter(
            status__in=StampListing.OPEN_STATUSES,
            expires_at__lte=now
        ).order_by('expires_at')

        self.stdout.write('Expiring open listings...')
        expired = 0
        failed = 0

        # Each expiry writes to the scanned rows
        candidates = list(
            listings.values_list('id', 'status', 'expires_at').iterator(chunk_size=batch_size)
        )

        for listing_id, status, expires_at in candidates:
            if dry_run:
                self.stdout.write(f'  [DRY-RUN] Listing {listing_id} ({status}) expired at {expires_at.isoformat()}')
                expired += 1
                continue

            try:
                services.expire_listing(listing_id, now=now)
            except MarketplaceError as e:
                # Listing changed state since it was selected
                logger.warning(f"Listing not expired. Listing ID: {listing_id}, Reason: {e.message}")
                failed += 1
                continue

            expired += 1
            if expired % 100 == 0:
                self.stdout.write(f'Expired {expired} listings...')

        self.stdout.write(f'Processed {expired + failed} listings total, {expired} expired, {failed} skipped.')

        if dry_run:
            self.stdout.write(self.style.SUCCESS('Dry run completed. No changes saved.'))
        else:
            self.stdout.write(self.style.SUCCESS('Listing expiry completed successfully.'))
