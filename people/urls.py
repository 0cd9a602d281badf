from django.urls import path
from . import views

app_name = "people"

urlpatterns = [
    path("players/", views.player_list, name="player_list"),
    path("players/create/", views.player_create, name="player_create"),
    path("players/<int:pk>/", views.player_detail, name="player_detail"),
    path("players/<int:pk>/update/", views.player_update, name="player_update"),
    path("players/<int:pk>/delete/", views.player_delete, name="player_delete"),
    path("players/<int:pk>/credit/", views.player_issue_credit, name="player_issue_credit"),
]
