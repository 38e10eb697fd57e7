from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from utils.exceptions import ValidationError

from .models import Product
from .services import create_product

User = get_user_model()


def make_user(username, role="user", is_verified=False):
    user = User.objects.create_user(username=username, email=f"{username}@example.com", password="testpassword123")
    user.account.role = role
    user.account.is_verified = is_verified
    user.account.save()
    return user


class ProductServiceTests(TestCase):
    def test_equal_user_and_agent_price_is_rejected(self):
        with self.assertRaises(ValidationError) as ctx:
            create_product(
                name="MTN 1GB",
                network="MTN",
                data_amount="1GB",
                user_price=Decimal("10.00"),
                agent_price=Decimal("10.00"),
            )
        self.assertIn("must be different", str(ctx.exception))
        self.assertFalse(Product.objects.exists())

    def test_create_product_and_price_for_role(self):
        product = create_product(
            name="Telecel 10GB",
            network="Telecel",
            data_amount="10GB",
            user_price=Decimal("50.00"),
            agent_price=Decimal("45.00"),
        )

        self.assertEqual(product.price_for_role("agent"), Decimal("45.00"))
        self.assertEqual(product.price_for_role("user"), Decimal("50.00"))
        self.assertEqual(product.price_for_role("admin"), Decimal("50.00"))

    def test_unknown_network_is_rejected(self):
        with self.assertRaises(ValidationError):
            create_product(
                name="Vodafone 1GB",
                network="Vodafone",
                data_amount="1GB",
                user_price=Decimal("10.00"),
                agent_price=Decimal("9.00"),
            )


class ProductListViewTests(APITestCase):
    def setUp(self):
        self.url = reverse("product-list")
        Product.objects.create(
            name="MTN 1GB", network="MTN", data_amount="1GB", user_price=Decimal("6.00"), agent_price=Decimal("5.00")
        )

    def test_anonymous_users_can_browse(self):
        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 1)

    def test_unverified_agent_cannot_browse(self):
        self.client.force_authenticate(user=make_user("agent", role="agent"))

        response = self.client.get(self.url)

        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_only_admin_can_create(self):
        payload = {
            "name": "MTN 2GB",
            "network": "MTN",
            "data_amount": "2GB",
            "user_price": "11.00",
            "agent_price": "10.00",
        }
        self.client.force_authenticate(user=make_user("buyer"))
        self.assertEqual(self.client.post(self.url, payload, format="json").status_code, status.HTTP_403_FORBIDDEN)

        self.client.force_authenticate(user=make_user("admin", role="admin", is_verified=True))
        response = self.client.post(self.url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        self.assertEqual(Product.objects.count(), 2)

    def test_create_with_equal_prices_returns_400(self):
        self.client.force_authenticate(user=make_user("admin", role="admin", is_verified=True))

        response = self.client.post(
            self.url,
            {"name": "MTN 3GB", "network": "MTN", "data_amount": "3GB", "user_price": "15.00", "agent_price": "15.00"},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["error"], "User price and Agent price must be different")
