from django.urls import path

from . import views

urlpatterns = [
    path('visits/<int:visit_id>/messages/', views.VisitMessageListCreate.as_view(), name='visit-messages'),
    path('visits/<int:visit_id>/messages/mark-read/', views.VisitMessagesMarkRead.as_view(), name='visit-messages-mark-read'),
    path('messages/<int:pk>/read/', views.MessageMarkRead.as_view(), name='message-mark-read'),
    path('messages/unread-count/', views.UnreadCount.as_view(), name='message-unread-count'),
    path('chat/stream/', views.ChatSSEStream.as_view(), name='chat-stream'),
]
