from django.apps import AppConfig, apps


class PaymentsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"

    def ready(self):
        from .services import PaystackWebhookHandler

        checkout = apps.get_app_config("orders").checkout
        self.webhooks = PaystackWebhookHandler(
            gateway=checkout.gateway,
            ledger=checkout.ledger,
            checkout=checkout,
        )
