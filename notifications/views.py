from django.shortcuts import get_object_or_404
from django.utils import timezone
from rest_framework import permissions, status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.response import Response
from rest_framework.views import APIView

from .models import Notification
from .serializers import MarkReadSerializer, NotificationSerializer


class InboxPagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = "page_size"
    max_page_size = 100


class NotificationListView(ListAPIView):
    """The user's inbox, newest first, with the unread count alongside the page."""

    permission_classes = [permissions.IsAuthenticated]
    serializer_class = NotificationSerializer
    pagination_class = InboxPagination

    def get_queryset(self):
        queryset = Notification.objects.filter(user=self.request.user)
        params = self.request.query_params
        if params.get("type"):
            queryset = queryset.filter(type=params["type"])
        if params.get("entity_type"):
            queryset = queryset.filter(entity_type=params["entity_type"])
        if params.get("unread") in ("1", "true"):
            queryset = queryset.filter(is_read=False)
        return queryset

    def list(self, request, *args, **kwargs):
        response = super().list(request, *args, **kwargs)
        response.data["unread"] = Notification.objects.filter(user=request.user, is_read=False).count()
        return response


class NotificationDetailView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        notification = get_object_or_404(Notification, pk=pk, user=request.user)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = timezone.now()
            notification.save(update_fields=["is_read", "read_at"])
        return Response(NotificationSerializer(notification).data)


class NotificationMarkReadView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request):
        serializer = MarkReadSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        queryset = Notification.objects.filter(user=request.user, is_read=False)
        if not serializer.validated_data["all"]:
            queryset = queryset.filter(pk__in=serializer.validated_data["ids"])
        updated = queryset.update(is_read=True, read_at=timezone.now())
        unread = Notification.objects.filter(user=request.user, is_read=False).count()
        return Response({"updated": updated, "unread": unread}, status=status.HTTP_200_OK)
