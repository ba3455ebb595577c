from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import ValidationError
from .filters import VisitFilter
from .models import Visit
from .serializers import (
    NotificationSerializer, ReminderItemSerializer, VisitCreateSerializer,
    VisitDocumentsSerializer, VisitReviewSerializer, VisitSerializer,
    VisitStatusSerializer,
)
from .services import (
    attach_documents, create_visit, get_visit, link_review,
    list_notifications, mark_notifications_read, visits_for_user,
)
from .transitions import transition_visit, validate_visit


# ---------------------------------------------------------------------------
# Visits
# ---------------------------------------------------------------------------

class VisitListCreate(generics.ListCreateAPIView):
    """GET: visits the user requested or hosts (?role=requester|host).
    POST: book a visit as requester."""
    permission_classes = [IsAuthenticated]
    serializer_class = VisitSerializer
    filterset_class = VisitFilter
    ordering_fields = ['scheduled_at', 'created_at', 'status']

    def get_queryset(self):
        role = self.request.query_params.get('role')
        if role not in (None, *Visit.Role.values):
            raise ValidationError(f'Unknown role: {role}')
        return visits_for_user(self.request.user.pk, role=role)

    def create(self, request, *args, **kwargs):
        serializer = VisitCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        visit = create_visit(requester_id=request.user.pk, **serializer.validated_data)
        return Response(VisitSerializer(visit).data, status=status.HTTP_201_CREATED)


class VisitDetail(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        visit = get_visit(pk, request.user.pk)
        return Response(VisitSerializer(visit).data)


class VisitStatusUpdate(APIView):
    """Generic status change. The actor's role is derived from the visit:
    its requester acts as requester, anyone else is checked as host."""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        serializer = VisitStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        visit = get_visit(pk, request.user.pk)
        role = Visit.Role.REQUESTER if visit.requester_id == request.user.pk else Visit.Role.HOST
        visit = transition_visit(
            visit.pk, request.user.pk, role, serializer.validated_data['status'],
        )
        return Response(VisitSerializer(visit).data)


class VisitValidate(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        get_visit(pk, request.user.pk)
        visit = validate_visit(pk, request.user.pk)
        return Response(VisitSerializer(visit).data)


class VisitDocuments(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        serializer = VisitDocumentsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        get_visit(pk, request.user.pk)
        visit = attach_documents(pk, request.user.pk, serializer.validated_data['documents'])
        return Response(VisitSerializer(visit).data)


class VisitReviewLink(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        serializer = VisitReviewSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        get_visit(pk, request.user.pk)
        visit = link_review(pk, request.user.pk, serializer.validated_data['review_id'])
        return Response(VisitSerializer(visit).data)


class VisitReminderList(generics.ListAPIView):
    """Reminders addressed to the current user for one visit."""
    permission_classes = [IsAuthenticated]
    serializer_class = ReminderItemSerializer
    pagination_class = None

    def get_queryset(self):
        visit = get_visit(self.kwargs['pk'], self.request.user.pk)
        return visit.reminders.filter(recipient=self.request.user)


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------

class NotificationList(generics.ListAPIView):
    permission_classes = [IsAuthenticated]
    serializer_class = NotificationSerializer

    def get_queryset(self):
        is_read = self.request.query_params.get('is_read')
        if is_read is not None:
            is_read = is_read.lower() in ('true', '1')
        return list_notifications(self.request.user.pk, is_read=is_read).order_by('-created_at')


class NotificationMarkRead(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request):
        ids = request.data.get('ids') or None
        updated = mark_notifications_read(request.user.pk, ids=ids)
        return Response({'detail': 'Marked as read.', 'updated': updated})
