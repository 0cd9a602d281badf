from django.urls import path
from . import views

app_name = 'imports'

urlpatterns = [
    path('preview/', views.parse_preview, name='parse_preview'),
    path('raw/', views.import_raw, name='import_raw'),
    path('capacity/', views.import_capacity, name='import_capacity'),
    path('responses/', views.import_responses, name='import_responses'),
]
