from django.urls import path

from .views import DeviceTokenBulkDelete, DeviceTokenRegister, ProfileView, RegisterView

urlpatterns = [
    path('auth/register/', RegisterView.as_view(), name='auth-register'),
    path('auth/profile/', ProfileView.as_view(), name='auth-profile'),
    path('me/device-tokens/', DeviceTokenRegister.as_view(), name='device-token-register'),
    path('me/device-tokens/all/', DeviceTokenBulkDelete.as_view(), name='device-token-bulk-delete'),
]
