from datetime import date
import json
import logging

from django.db import DatabaseError
from django.db.models import Count, Q
from django.http import Http404, JsonResponse, QueryDict
from django.shortcuts import get_object_or_404
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from .forms import (
    BatchRegistrationForm, CreditForm, PackageForm, ProgramForm,
    RegistrationForm, SeriesForm, reference_form_class,
)
from .models import REFERENCE_MODELS, Package, Program, ProgramPackage, Registration
from .services import (
    add_program_to_package,
    create_program_series,
    create_registrations,
    delete_package,
    delete_program,
    package_players,
    remove_program_from_package,
    remove_registration,
)
from .signals import publish_change
from .utils.program_naming import build_series_plan

logger = logging.getLogger(__name__)


def request_data(request):
    """Form data from a JSON body or a regular form post."""
    if request.content_type == 'application/json':
        try:
            payload = json.loads(request.body or b'{}')
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None
    if request.method == 'POST':
        return request.POST
    return QueryDict(request.body)


def form_error_response(form):
    return JsonResponse({'error': 'Invalid data', 'errors': form.errors.get_json_data()}, status=400)


def invalid_body_response():
    return JsonResponse({'error': 'Request body must be a JSON object'}, status=400)


def parse_iso_date(value):
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def id_filters(params, fields):
    """
    Foreign key filters from query params, keyed as ``<field>_id``.

    Raises ValueError naming the first value that is not an integer id.
    """
    filters = {}
    for field in fields:
        value = params.get(field)
        if not value:
            continue
        try:
            filters[f'{field}_id'] = int(value)
        except ValueError:
            raise ValueError(f"Invalid {field} id: {value}")
    return filters


def filter_programs(params):
    """
    Apply the program list filters.

    Raises ValueError for a non-numeric reference id.
    """
    programs = Program.objects.select_related('level', 'category', 'location', 'season')

    search = params.get('search', '').strip()
    if search:
        programs = programs.filter(Q(name__icontains=search) | Q(original_id__icontains=search))

    programs = programs.filter(**id_filters(params, ('level', 'category', 'location', 'season')))

    date_from = parse_iso_date(params.get('date_from'))
    if date_from:
        programs = programs.filter(date__gte=date_from)
    date_to = parse_iso_date(params.get('date_to'))
    if date_to:
        programs = programs.filter(date__lte=date_to)
    return programs


# ---------------------------------------------------------------------------
# Programs
# ---------------------------------------------------------------------------

@require_http_methods(["GET"])
def program_list(request):
    """List programs, newest first, with registration counts."""
    try:
        programs = filter_programs(request.GET)
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    programs = programs.annotate(num_registrations=Count('registrations'))
    results = []
    for program in programs:
        data = program.to_dict()
        data['registration_count'] = program.num_registrations
        results.append(data)
    return JsonResponse({'programs': results})


@require_http_methods(["GET"])
def program_detail(request, pk):
    program = get_object_or_404(
        Program.objects.select_related('level', 'category', 'location', 'season'), pk=pk
    )
    data = program.to_dict()
    data['registration_count'] = program.registration_count
    data['packages'] = [package.to_dict() for package in program.packages.select_related('location')]
    return JsonResponse({'program': data})


@csrf_exempt
@require_http_methods(["POST"])
def program_create(request):
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = ProgramForm(data)
    if not form.is_valid():
        return form_error_response(form)
    try:
        program = form.save()
    except DatabaseError:
        logger.exception("Failed to create program")
        return JsonResponse({'error': 'Failed to create program'}, status=500)

    logger.info(f"Created program {program.pk} '{program.name}'")
    publish_change(program_create, 'programs')
    return JsonResponse({'success': True, 'program': program.to_dict()}, status=201)


@csrf_exempt
@require_http_methods(["POST", "PUT", "PATCH"])
def program_update(request, pk):
    program = get_object_or_404(Program, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = ProgramForm(data, instance=program)
    if not form.is_valid():
        return form_error_response(form)
    try:
        program = form.save()
    except DatabaseError:
        logger.exception(f"Failed to update program {pk}")
        return JsonResponse({'error': 'Failed to update program'}, status=500)

    publish_change(program_update, 'programs')
    return JsonResponse({'success': True, 'program': program.to_dict()})


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def program_delete(request, pk):
    """
    Delete a program and its registrations.

    With ``credit_amount`` every registered player is credited first.
    """
    program = get_object_or_404(Program, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = CreditForm(data)
    if not form.is_valid():
        return form_error_response(form)
    try:
        credited = delete_program(program, credit_amount=form.cleaned_data.get('credit_amount'))
    except DatabaseError:
        logger.exception(f"Failed to delete program {pk}")
        return JsonResponse({'error': 'Failed to delete program'}, status=500)
    return JsonResponse({'success': True, 'credited_players': credited})


def name_overrides(data, key):
    """Edited names from a form (repeated fields) or a JSON list of strings."""
    if hasattr(data, 'getlist'):
        return data.getlist(key)
    names = data.get(key)
    if names is None:
        return []
    if not isinstance(names, list) or not all(isinstance(name, str) for name in names):
        raise ValueError(f"{key} must be a list of names")
    return names


@csrf_exempt
@require_http_methods(["POST"])
def program_series_create(request):
    """
    Generate a weekly series of programs and the packages bundling them.

    With ``preview`` set, returns the generated plan without saving it so
    names can be edited and resubmitted as ``program_names``/``package_names``.
    """
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = SeriesForm(data)
    if not form.is_valid():
        return form_error_response(form)

    cleaned = form.cleaned_data
    try:
        program_names = name_overrides(data, 'program_names')
        package_names = name_overrides(data, 'package_names')
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)

    plan = build_series_plan(
        start_date=cleaned['start_date'],
        number_of_weeks=cleaned['number_of_weeks'],
        number_of_packages=cleaned['number_of_packages'],
        start_time=cleaned['start_time'],
        end_time=cleaned['end_time'],
        individual_day_price=cleaned.get('individual_day_price') or 0,
        package_per_day_price=cleaned.get('package_per_day_price') or 0,
        package_price_override=cleaned.get('package_price_override'),
        max_registrations=cleaned.get('max_registrations') or 0,
        level_name=cleaned['level'].name if cleaned.get('level') else None,
        category_name=cleaned['category'].name if cleaned.get('category') else None,
        program_name_overrides=program_names,
        package_name_overrides=package_names,
    )

    if str(data.get('preview', '')).lower() in ('1', 'true', 'yes'):
        return JsonResponse({'plan': plan.to_dict()})

    try:
        programs, packages, links = create_program_series(
            plan,
            level=cleaned.get('level'),
            category=cleaned.get('category'),
            location=cleaned.get('location'),
            season=cleaned.get('season'),
        )
    except DatabaseError:
        logger.exception("Failed to create program series")
        return JsonResponse({'error': 'Failed to create program series'}, status=500)

    return JsonResponse({
        'success': True,
        'programs': [program.to_dict() for program in programs],
        'packages': [package.to_dict() for package in packages],
        'links_created': len(links),
    }, status=201)


# ---------------------------------------------------------------------------
# Packages
# ---------------------------------------------------------------------------

@require_http_methods(["GET"])
def package_list(request):
    packages = Package.objects.select_related('location').annotate(num_programs=Count('program_links'))
    search = request.GET.get('search', '').strip()
    if search:
        packages = packages.filter(Q(name__icontains=search) | Q(original_id__icontains=search))
    location = request.GET.get('location')
    if location:
        packages = packages.filter(location_id=location)

    results = []
    for package in packages:
        data = package.to_dict()
        data['program_count'] = package.num_programs
        results.append(data)
    return JsonResponse({'packages': results})


@require_http_methods(["GET"])
def package_detail(request, pk):
    package = get_object_or_404(Package.objects.select_related('location'), pk=pk)
    data = package.to_dict()
    data['programs'] = [
        link.to_dict() for link in package.program_links.select_related('program')
    ]
    return JsonResponse({'package': data})


@csrf_exempt
@require_http_methods(["POST"])
def package_create(request):
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = PackageForm(data)
    if not form.is_valid():
        return form_error_response(form)
    try:
        package = form.save()
    except DatabaseError:
        logger.exception("Failed to create package")
        return JsonResponse({'error': 'Failed to create package'}, status=500)

    logger.info(f"Created package {package.pk} '{package.name}'")
    publish_change(package_create, 'packages')
    return JsonResponse({'success': True, 'package': package.to_dict()}, status=201)


@csrf_exempt
@require_http_methods(["POST", "PUT", "PATCH"])
def package_update(request, pk):
    package = get_object_or_404(Package, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = PackageForm(data, instance=package)
    if not form.is_valid():
        return form_error_response(form)
    try:
        package = form.save()
    except DatabaseError:
        logger.exception(f"Failed to update package {pk}")
        return JsonResponse({'error': 'Failed to update package'}, status=500)

    publish_change(package_update, 'packages')
    return JsonResponse({'success': True, 'package': package.to_dict()})


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def package_delete(request, pk):
    """
    Delete a package, leaving its programs in place unless
    ``with_programs`` is set.
    """
    package = get_object_or_404(Package, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = CreditForm(data)
    if not form.is_valid():
        return form_error_response(form)

    with_programs = str(data.get('with_programs', '')).lower() in ('1', 'true', 'yes', 'on')
    try:
        deleted_programs = delete_package(
            package,
            with_programs=with_programs,
            credit_amount=form.cleaned_data.get('credit_amount'),
        )
    except DatabaseError:
        logger.exception(f"Failed to delete package {pk}")
        return JsonResponse({'error': 'Failed to delete package'}, status=500)
    return JsonResponse({'success': True, 'programs_deleted': deleted_programs})


@require_http_methods(["GET"])
def package_programs(request, pk):
    package = get_object_or_404(Package, pk=pk)
    links = package.program_links.select_related(
        'program', 'program__level', 'program__category', 'program__location', 'program__season'
    )
    return JsonResponse({
        'package_id': package.pk,
        'programs': [dict(link.program.to_dict(), link_id=link.pk) for link in links],
    })


@csrf_exempt
@require_http_methods(["POST"])
def package_add_program(request, pk):
    package = get_object_or_404(Package, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    program_id = data.get('program_id')
    if not program_id:
        return JsonResponse({'error': 'program_id is required'}, status=400)
    try:
        program = Program.objects.get(pk=program_id)
    except (Program.DoesNotExist, ValueError):
        return JsonResponse({'error': 'Program not found'}, status=404)

    link, created = add_program_to_package(program, package)
    return JsonResponse({'success': True, 'created': created, 'link': link.to_dict()},
                        status=201 if created else 200)


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def package_remove_program(request, pk, program_pk):
    link = get_object_or_404(ProgramPackage, package_id=pk, program_id=program_pk)
    remove_program_from_package(link)
    return JsonResponse({'success': True})


@require_http_methods(["GET"])
def package_player_list(request, pk):
    """Players registered through this package, each listed once."""
    package = get_object_or_404(Package, pk=pk)
    return JsonResponse({'players': [player.to_dict() for player in package_players(package)]})


# ---------------------------------------------------------------------------
# Registrations
# ---------------------------------------------------------------------------

@require_http_methods(["GET"])
def registration_list(request):
    try:
        filters = id_filters(request.GET, ('player', 'program', 'package'))
    except ValueError as e:
        return JsonResponse({'error': str(e)}, status=400)
    registrations = Registration.objects.select_related('player', 'program', 'package').filter(**filters)
    return JsonResponse({'registrations': [r.to_dict() for r in registrations]})


@csrf_exempt
@require_http_methods(["POST"])
def registration_create(request):
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = RegistrationForm(data)
    if not form.is_valid():
        return form_error_response(form)
    try:
        registration = form.save()
    except DatabaseError:
        logger.exception("Failed to create registration")
        return JsonResponse({'error': 'Failed to create registration'}, status=500)

    publish_change(registration_create, 'registrations')
    return JsonResponse({'success': True, 'registration': registration.to_dict()}, status=201)


@csrf_exempt
@require_http_methods(["POST"])
def registration_batch_create(request):
    """Register one player for several programs at once."""
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = BatchRegistrationForm(data)
    if not form.is_valid():
        return form_error_response(form)

    try:
        registrations = create_registrations(
            form.cleaned_data['player'],
            list(form.cleaned_data.get('programs') or []),
            package=form.cleaned_data.get('package'),
        )
    except DatabaseError:
        logger.exception("Failed to create registrations")
        return JsonResponse({'error': 'Failed to create registrations'}, status=500)

    return JsonResponse({
        'success': True,
        'registrations': [r.to_dict() for r in registrations],
    }, status=201)


@csrf_exempt
@require_http_methods(["POST", "PUT", "PATCH"])
def registration_update(request, pk):
    registration = get_object_or_404(Registration, pk=pk)
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = RegistrationForm(data, instance=registration)
    if not form.is_valid():
        return form_error_response(form)
    try:
        registration = form.save()
    except DatabaseError:
        logger.exception(f"Failed to update registration {pk}")
        return JsonResponse({'error': 'Failed to update registration'}, status=500)

    publish_change(registration_update, 'registrations')
    return JsonResponse({'success': True, 'registration': registration.to_dict()})


@csrf_exempt
@require_http_methods(["POST", "DELETE"])
def registration_delete(request, pk):
    """
    Remove a registration, optionally crediting the player first with the
    program price, the package price or a custom amount.
    """
    registration = get_object_or_404(
        Registration.objects.select_related('player', 'program', 'package'), pk=pk
    )
    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = CreditForm(data)
    if not form.is_valid():
        return form_error_response(form)

    try:
        amount = remove_registration(
            registration,
            credit_type=form.cleaned_data.get('credit_type') or None,
            custom_amount=form.cleaned_data.get('credit_amount'),
        )
    except DatabaseError:
        logger.exception(f"Failed to remove registration {pk}")
        return JsonResponse({'error': 'Failed to remove registration'}, status=500)
    return JsonResponse({'success': True, 'credit_issued': float(amount)})


# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

def get_reference_model(kind):
    try:
        return REFERENCE_MODELS[kind]
    except KeyError:
        raise Http404(f"Unknown reference type: {kind}")


@csrf_exempt
@require_http_methods(["GET", "POST"])
def reference_list(request, kind):
    """List or create levels, categories, locations or seasons."""
    model = get_reference_model(kind)
    if request.method == 'GET':
        return JsonResponse({kind: [item.to_dict() for item in model.objects.all()]})

    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = reference_form_class(model)(data)
    if not form.is_valid():
        return form_error_response(form)
    item = form.save()
    publish_change(reference_list, kind)
    return JsonResponse({'success': True, 'item': item.to_dict()}, status=201)


@csrf_exempt
@require_http_methods(["POST", "PUT", "PATCH", "DELETE"])
def reference_detail(request, kind, pk):
    model = get_reference_model(kind)
    item = get_object_or_404(model, pk=pk)

    if request.method == 'DELETE' or request.POST.get('_method') == 'DELETE':
        item.delete()
        publish_change(reference_detail, kind)
        return JsonResponse({'success': True})

    data = request_data(request)
    if data is None:
        return invalid_body_response()
    form = reference_form_class(model)(data, instance=item)
    if not form.is_valid():
        return form_error_response(form)
    item = form.save()
    publish_change(reference_detail, kind)
    return JsonResponse({'success': True, 'item': item.to_dict()})

