"""
URL configuration for the club admin project.

The `urlpatterns` list routes URLs to views. For more information please see:
    https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    path('admin/', admin.site.urls),
    path('people/', include('people.urls')),
    path('imports/', include('imports.urls')),
    path('', include('programs.urls')),
    path('', include('dashboard.urls')),
]
