# apps/custom_fields/signals.py
from django.core.signals import setting_changed
from django.dispatch import receiver

from .encryption import reset_encryptor
import logging

logger = logging.getLogger(__name__)


@receiver(setting_changed)
def reset_encryptor_on_key_change(sender, setting, **kwargs):
    """Rebuild the encryptor when its key settings are overridden (tests, reloads)."""
    if setting in ("CUSTOM_FIELDS", "SECRET_KEY"):
        logger.debug(f"{setting} changed, resetting custom field encryptor")
        reset_encryptor()
