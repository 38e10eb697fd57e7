from rest_framework import status
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.permissions import role_of
from utils.exceptions import FulfilmentError

from .serializers import ProductSerializer
from .services import create_product, list_products


class ProductListView(APIView):
    """
    GET lists the catalogue (anonymous visitors included, unverified agents excluded).
    POST creates a product and is admin only.
    """

    permission_classes = [AllowAny]

    def get(self, request):
        user = request.user
        if user.is_authenticated and role_of(user) == "agent" and not user.account.is_verified:
            return Response({"error": "Agent not verified"}, status=status.HTTP_403_FORBIDDEN)
        return Response(ProductSerializer(list_products(), many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        if not request.user.is_authenticated or role_of(request.user) != "admin":
            return Response({"error": "Forbidden"}, status=status.HTTP_403_FORBIDDEN)

        serializer = ProductSerializer(data=request.data)
        if not serializer.is_valid():
            return Response({"error": serializer.errors}, status=status.HTTP_400_BAD_REQUEST)

        try:
            product = create_product(**serializer.validated_data)
        except FulfilmentError as e:
            return Response({"error": str(e)}, status=e.status_code)

        return Response(ProductSerializer(product).data, status=status.HTTP_201_CREATED)
