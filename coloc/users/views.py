from rest_framework import generics, permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import DeviceToken
from .serializers import DeviceTokenSerializer, RegisterSerializer, UserSerializer


class RegisterView(generics.CreateAPIView):
    permission_classes = [permissions.AllowAny]
    serializer_class = RegisterSerializer


class ProfileView(generics.RetrieveUpdateAPIView):
    """GET: returns the current user. PATCH: updates phone and names."""
    permission_classes = [permissions.IsAuthenticated]
    serializer_class = UserSerializer
    http_method_names = ['get', 'patch', 'head', 'options']

    def get_object(self):
        return self.request.user


class DeviceTokenRegister(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        from visits.notifications import get_push_deliverer

        serializer = DeviceTokenSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        get_push_deliverer().register_token(
            request.user.pk,
            serializer.validated_data['platform'],
            serializer.validated_data['token'],
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


class DeviceTokenBulkDelete(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def delete(self, request):
        DeviceToken.objects.filter(user=request.user).delete()
        return Response(status=status.HTTP_204_NO_CONTENT)
