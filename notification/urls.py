from django.urls import path

from notification import views

urlpatterns = [
    path('notification/list/', views.notification_list, name='notification-list'),
    path('notification/unseen/', views.unseen_notification_list, name='unseen-notification-list'),
    path('notification/seen-all/', views.mark_all_notifications_seen, name='mark-all-notifications-seen'),
    path('<int:pk>/seen/', views.mark_notification_seen, name='mark-notification-seen'),
    path('<int:pk>/delete/', views.NotificationDeleteAPIView.as_view(), name='delete-notification'),
]
