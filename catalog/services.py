import logging

from django.core.exceptions import ValidationError as ModelValidationError

from utils.exceptions import ValidationError

from .models import Product

logger = logging.getLogger(__name__)


def list_products():
    return Product.objects.all()


def create_product(**fields):
    product = Product(**fields)
    try:
        product.full_clean()
    except ModelValidationError as e:
        raise ValidationError("; ".join(e.messages)) from e
    product.save()
    logger.info(f"Created product {product.pk}: {product}")
    return product
