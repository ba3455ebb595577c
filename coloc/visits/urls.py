from django.urls import path

from . import views

urlpatterns = [
    path('visits/', views.VisitListCreate.as_view(), name='visit-list'),
    path('visits/<int:pk>/', views.VisitDetail.as_view(), name='visit-detail'),
    path('visits/<int:pk>/status/', views.VisitStatusUpdate.as_view(), name='visit-status'),
    path('visits/<int:pk>/validate/', views.VisitValidate.as_view(), name='visit-validate'),
    path('visits/<int:pk>/documents/', views.VisitDocuments.as_view(), name='visit-documents'),
    path('visits/<int:pk>/review/', views.VisitReviewLink.as_view(), name='visit-review'),
    path('visits/<int:pk>/reminders/', views.VisitReminderList.as_view(), name='visit-reminders'),
    path('notifications/', views.NotificationList.as_view(), name='notification-list'),
    path('notifications/mark-read/', views.NotificationMarkRead.as_view(), name='notification-mark-read'),
]
