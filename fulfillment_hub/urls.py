from django.contrib import admin
from django.http import JsonResponse
from django.urls import path, include
from drf_spectacular.views import SpectacularAPIView


def health(request):
    return JsonResponse({"ok": True})


urlpatterns = [
    path('admin/', admin.site.urls),
    path('health', health, name='health'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),

    path('api/inventory/', include('inventory.urls')),
    path('api/production/', include('production.urls')),
    path('api/replenishment/', include('replenishment.urls')),
    path('api/integrations/', include('integrations.urls')),
]
