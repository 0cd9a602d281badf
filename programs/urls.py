from django.urls import path
from . import views

app_name = 'programs'

urlpatterns = [
    # Programs
    path('programs/', views.program_list, name='program_list'),
    path('programs/create/', views.program_create, name='program_create'),
    path('programs/series/', views.program_series_create, name='program_series_create'),
    path('programs/<int:pk>/', views.program_detail, name='program_detail'),
    path('programs/<int:pk>/update/', views.program_update, name='program_update'),
    path('programs/<int:pk>/delete/', views.program_delete, name='program_delete'),

    # Packages
    path('packages/', views.package_list, name='package_list'),
    path('packages/create/', views.package_create, name='package_create'),
    path('packages/<int:pk>/', views.package_detail, name='package_detail'),
    path('packages/<int:pk>/update/', views.package_update, name='package_update'),
    path('packages/<int:pk>/delete/', views.package_delete, name='package_delete'),
    path('packages/<int:pk>/programs/', views.package_programs, name='package_programs'),
    path('packages/<int:pk>/programs/add/', views.package_add_program, name='package_add_program'),
    path('packages/<int:pk>/programs/<int:program_pk>/remove/', views.package_remove_program, name='package_remove_program'),
    path('packages/<int:pk>/players/', views.package_player_list, name='package_players'),

    # Registrations
    path('registrations/', views.registration_list, name='registration_list'),
    path('registrations/create/', views.registration_create, name='registration_create'),
    path('registrations/batch/', views.registration_batch_create, name='registration_batch_create'),
    path('registrations/<int:pk>/update/', views.registration_update, name='registration_update'),
    path('registrations/<int:pk>/delete/', views.registration_delete, name='registration_delete'),

    # Levels, categories, locations, seasons
    path('reference/<str:kind>/', views.reference_list, name='reference_list'),
    path('reference/<str:kind>/<int:pk>/', views.reference_detail, name='reference_detail'),
]
