from django.apps import AppConfig


class IntegrationsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "surveykit_app.integrations"
    verbose_name = "Integrations"
