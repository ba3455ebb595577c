from django.http import StreamingHttpResponse
from rest_framework import generics, status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from coloc.pagination import ConversationPagination

from .realtime import gateway
from .serializers import MessageCreateSerializer, MessageSerializer
from .services import list_messages, mark_all_read, mark_message_read, send_message, unread_count


class VisitMessageListCreate(generics.ListCreateAPIView):
    """GET: conversation of a visit, oldest first. POST: send a message."""
    permission_classes = [IsAuthenticated]
    serializer_class = MessageSerializer
    pagination_class = ConversationPagination

    def get_queryset(self):
        return list_messages(self.kwargs['visit_id'], self.request.user.pk)

    def create(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        message = send_message(
            self.kwargs['visit_id'],
            request.user.pk,
            content=serializer.validated_data['content'],
            attachments=serializer.validated_data['attachments'],
        )
        return Response(MessageSerializer(message).data, status=status.HTTP_201_CREATED)


class VisitMessagesMarkRead(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, visit_id):
        updated = mark_all_read(visit_id, request.user.pk)
        return Response({'detail': 'Marked as read.', 'updated': updated})


class MessageMarkRead(APIView):
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        message = mark_message_read(pk, request.user.pk)
        return Response(MessageSerializer(message).data)


class UnreadCount(APIView):
    permission_classes = [IsAuthenticated]

    def get(self, request):
        return Response({'unread': unread_count(request.user.pk)})


class ChatSSEStream(APIView):
    permission_classes = [IsAuthenticated]

    def perform_content_negotiation(self, request, force=False):
        """Bypass DRF content negotiation; this view returns a StreamingHttpResponse directly."""
        return (self.renderer_classes[0](), self.renderer_classes[0].media_type)

    def get(self, request):
        response = StreamingHttpResponse(
            gateway.stream(request.user.pk),
            content_type='text/event-stream',
        )
        response['Cache-Control'] = 'no-cache'
        response['X-Accel-Buffering'] = 'no'
        return response
