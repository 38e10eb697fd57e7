from django.apps import AppConfig


class OrdersConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "orders"

    def ready(self):
        import orders.signals  # noqa: F401
        from .checkout import build_checkout_service

        # One service graph per process; views reach it through this config.
        self.checkout = build_checkout_service()
