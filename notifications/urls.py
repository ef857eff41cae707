from django.urls import path

from .views import NotificationDetailView, NotificationListView, NotificationMarkReadView


urlpatterns = [
    path("", NotificationListView.as_view(), name="notifications-list"),
    path("read/", NotificationMarkReadView.as_view(), name="notifications-mark-read"),
    path("<uuid:pk>/", NotificationDetailView.as_view(), name="notifications-detail"),
]
