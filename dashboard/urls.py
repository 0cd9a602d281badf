from django.urls import path
from . import views

app_name = 'dashboard'

urlpatterns = [
    path('', views.dashboard, name='dashboard'),
    path('stats/', views.dashboard_stats, name='stats'),
    path('upcoming/', views.upcoming, name='upcoming'),
    path('recent/', views.recent, name='recent'),
    path('counter/', views.registrations_counter, name='registrations_counter'),
    path('counter/data/', views.registrations_counter_data, name='registrations_counter_data'),
]
