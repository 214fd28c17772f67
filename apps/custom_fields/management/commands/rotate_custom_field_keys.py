# apps/custom_fields/management/commands/rotate_custom_field_keys.py

import logging

from django.core.management.base import BaseCommand

from apps.custom_fields.encryption import get_encryptor
from apps.custom_fields.models import DataFieldValue

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Re-encrypt every stored custom field value with the primary encryption key"

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Only report how many values would be re-encrypted",
        )

    def handle(self, *args, **options):
        values = DataFieldValue.objects.exclude(value="")

        if options["dry_run"]:
            self.stdout.write(f"{values.count()} custom field values would be re-encrypted")
            return

        encryptor = get_encryptor()
        rotated = 0
        for stored in values.iterator():
            stored.value = encryptor.rotate(stored.value)
            stored.save(update_fields=["value", "updated_at"])
            rotated += 1

        logger.info(f"Re-encrypted {rotated} custom field values")
        self.stdout.write(self.style.SUCCESS(f"Re-encrypted {rotated} custom field values"))
