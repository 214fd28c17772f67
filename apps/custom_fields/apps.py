from django.apps import AppConfig


class CustomFieldsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.custom_fields'
    label = 'custom_fields'
    verbose_name = 'Custom Fields'

    def ready(self):
        from apps.custom_fields import signals  # noqa: F401
