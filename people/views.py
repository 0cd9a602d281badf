import logging

from django.db import DatabaseError
from django.db.models import Count, Q
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from programs.services import issue_credit
from programs.signals import publish_change
from programs.views import form_error_response, invalid_body_response, request_data
from .forms import IssueCreditForm, PlayerForm
from .models import Player

logger = logging.getLogger(__name__)


@require_http_methods(["GET"])
def player_list(request):
    players = Player.objects.annotate(num_registrations=Count("registrations"))
    search = request.GET.get("search", "").strip()
    if search:
        players = players.filter(
            Q(first_name__icontains=search)
            | Q(last_name__icontains=search)
            | Q(email__icontains=search)
        )
    results = []
    for player in players:
        data = player.to_dict()
        data["registration_count"] = player.num_registrations
        results.append(data)
    return JsonResponse({"players": results})


@require_http_methods(["GET"])
def player_detail(request, pk):
    """Player profile with every registration and its program or package."""
    player = get_object_or_404(Player, pk=pk)
    registrations = player.registrations.select_related("program", "package")
    data = player.to_dict()
    data["registrations"] = [registration.to_dict() for registration in registrations]
    return JsonResponse({"player": data})


@csrf_exempt
@require_http_methods(["POST"])
def player_create(request):
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = PlayerForm(data)
    if not form.is_valid():
        return form_error_response(form)
    try:
        player = form.save()
    except DatabaseError:
        logger.exception("Failed to create player")
        return JsonResponse({"error": "Failed to create player"}, status=500)

    logger.info(f"Created player {player.pk} {player.full_name}")
    publish_change(player_create, "players")
    return JsonResponse({"success": True, "player": player.to_dict()}, status=201)


@csrf_exempt
@require_http_methods(["POST", "PUT", "PATCH"])
def player_update(request, pk):
    player = get_object_or_404(Player, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = PlayerForm(data, instance=player)
    if not form.is_valid():
        return form_error_response(form)
    try:
        player = form.save()
    except DatabaseError:
        logger.exception(f"Failed to update player {pk}")
        return JsonResponse({"error": "Failed to update player"}, status=500)

    publish_change(player_update, "players")
    return JsonResponse({"success": True, "player": player.to_dict()})


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def player_delete(request, pk):
    player = get_object_or_404(Player, pk=pk)
    try:
        player.delete()
    except DatabaseError:
        logger.exception(f"Failed to delete player {pk}")
        return JsonResponse({"error": "Failed to delete player"}, status=500)

    logger.info(f"Deleted player {pk}")
    publish_change(player_delete, "players", "registrations")
    return JsonResponse({"success": True})


@csrf_exempt
@require_http_methods(["POST"])
def player_issue_credit(request, pk):
    player = get_object_or_404(Player, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = IssueCreditForm(data)
    if not form.is_valid():
        return form_error_response(form)
    try:
        balance = issue_credit(player, form.cleaned_data["amount"])
    except DatabaseError:
        logger.exception(f"Failed to issue credit to player {pk}")
        return JsonResponse({"error": "Failed to issue credit"}, status=500)
    return JsonResponse({"success": True, "credit": float(balance)})
