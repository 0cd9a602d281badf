from django.http import JsonResponse
from django.shortcuts import render
from django.views.decorators.http import require_http_methods

from programs.views import parse_iso_date
from .counter import build_counter_matrix, counter_programs
from .stats import get_stats, recent_registrations, upcoming_programs


@require_http_methods(['GET'])
def dashboard(request):
    """Main dashboard view."""
    context = {
        'stats': get_stats(),
        'upcoming_programs': upcoming_programs(),
        'recent_registrations': recent_registrations(),
    }
    return render(request, 'dashboard/dashboard.html', context)


@require_http_methods(['GET'])
def dashboard_stats(request):
    """HTMX endpoint for dashboard statistics."""
    return render(request, 'dashboard/partials/stats.html', {'stats': get_stats()})


@require_http_methods(['GET'])
def upcoming(request):
    return JsonResponse({'programs': [program.to_dict() for program in upcoming_programs()]})


@require_http_methods(['GET'])
def recent(request):
    return JsonResponse({'registrations': [r.to_dict() for r in recent_registrations()]})


def _counter_matrix(request):
    date_from = parse_iso_date(request.GET.get('date_from'))
    date_to = parse_iso_date(request.GET.get('date_to'))
    return build_counter_matrix(counter_programs(date_from, date_to)), date_from, date_to


@require_http_methods(['GET'])
def registrations_counter(request):
    """Week-by-series occupancy table."""
    matrix, date_from, date_to = _counter_matrix(request)
    table = [
        {'row': row, 'cells': [
            cell.to_dict(row.max_registrations) if cell else None
            for cell in row.cells(matrix.week_count)
        ]}
        for row in matrix.rows
    ]
    context = {
        'matrix': matrix,
        'table': table,
        'date_from': date_from,
        'date_to': date_to,
    }
    return render(request, 'dashboard/registrations_counter.html', context)


@require_http_methods(['GET'])
def registrations_counter_data(request):
    matrix, _, _ = _counter_matrix(request)
    return JsonResponse(matrix.to_dict())
