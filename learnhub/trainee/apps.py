from django.apps import AppConfig


class TraineeConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'trainee'
    verbose_name = 'Attempts and Progress'

    def ready(self):
        # Connects the progress_event receiver
        from . import signals  # noqa: F401
