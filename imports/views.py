import logging

from django.db import DatabaseError
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from audit.services import record_operation
from programs.views import form_error_response
from .csv_parser import parse_csv
from .forms import STAGE_MAPPINGS, CSVUploadForm, RawDataUploadForm
from .importer import (
    CapacityMapping,
    FormResponseMapping,
    ImportMappingError,
    RawDataMapping,
    import_form_responses,
    import_programs_capacity,
    import_raw_data,
    parse_form_responses,
    parse_programs_capacity,
    parse_raw_data,
)

logger = logging.getLogger(__name__)

STAGE_PARSERS = {
    'raw': parse_raw_data,
    'capacity': parse_programs_capacity,
    'responses': parse_form_responses,
}


@csrf_exempt
@require_http_methods(["POST"])
def parse_preview(request):
    """
    Headers and parsed rows of an uploaded CSV, before anything is saved.

    With a ``stage`` (raw, capacity, responses) and its column mapping, rows
    are returned typed for that stage; otherwise as header -> cell maps.
    """
    form = CSVUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_error_response(form)

    text = form.cleaned_data['text']
    parsed = parse_csv(text)
    stage = request.POST.get('stage', '')
    if not stage:
        return JsonResponse({'headers': parsed.headers, 'rows': parsed.rows})
    if stage not in STAGE_PARSERS:
        return JsonResponse({'error': f'Unknown import stage: {stage}'}, status=400)

    try:
        rows = STAGE_PARSERS[stage](text, form.mapping(STAGE_MAPPINGS[stage]))
    except ImportMappingError as e:
        return JsonResponse({'error': str(e)}, status=400)
    return JsonResponse({'headers': parsed.headers, 'rows': [row.to_dict() for row in rows]})


def _run_import(operation, parse, run, text, mapping, **kwargs):
    try:
        rows = parse(text, mapping)
    except ImportMappingError as e:
        return JsonResponse({'error': str(e)}, status=400)

    try:
        with record_operation(operation, rows=len(rows)) as log:
            result = run(rows, **kwargs)
            log.record_step('imported', **result.to_dict())
    except DatabaseError:
        logger.exception(f"{operation} failed")
        return JsonResponse({'error': 'Import failed; see the operation log for completed steps'}, status=500)
    return JsonResponse({'success': True, 'rows': len(rows), 'result': result.to_dict()})


@csrf_exempt
@require_http_methods(["POST"])
def import_raw(request):
    """Step 1: programs and packages from the raw program export."""
    form = RawDataUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_error_response(form)
    return _run_import(
        'import_raw_data', parse_raw_data, import_raw_data,
        form.cleaned_data['text'], form.mapping(RawDataMapping),
        location=form.cleaned_data.get('location'),
        season=form.cleaned_data.get('season'),
    )


@csrf_exempt
@require_http_methods(["POST"])
def import_capacity(request):
    """Step 2: max registrations per program original id."""
    form = CSVUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_error_response(form)
    return _run_import(
        'import_programs_capacity', parse_programs_capacity, import_programs_capacity,
        form.cleaned_data['text'], form.mapping(CapacityMapping),
    )


@csrf_exempt
@require_http_methods(["POST"])
def import_responses(request):
    """Step 3: players and registrations from form responses."""
    form = CSVUploadForm(request.POST, request.FILES)
    if not form.is_valid():
        return form_error_response(form)
    return _run_import(
        'import_form_responses', parse_form_responses, import_form_responses,
        form.cleaned_data['text'], form.mapping(FormResponseMapping),
    )
