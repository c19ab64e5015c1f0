"""URL routes of the upload gateway."""

from django.urls import path

from server.apps.gateway import views

app_name = 'gateway'

urlpatterns = [
    path('upload/<str:token>', views.upload, name='upload'),
    path('download/<str:token>', views.download, name='download'),
    path('health', views.health, name='health'),
]
