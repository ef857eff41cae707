
from django.contrib import admin
from django.urls import path, include



urlpatterns = [
    path("admin/", admin.site.urls),
    path('auth/', include('account.urls')),
    path('payment/', include('payment.urls')),
    path('notifications/', include('notifications.urls')),
]
