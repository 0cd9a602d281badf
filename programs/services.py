"""
Multi-step writes for programs, packages and registrations.

None of these flows are transactional. Each step is its own write and is
recorded in an ``audit.OperationLog`` as it completes, so a failure part
way through leaves a record of what already happened (for example credit
issued but the registration still present).
"""
from decimal import Decimal
import logging

from audit.services import record_operation
from people.models import Player

from .models import Package, Program, ProgramPackage, Registration
from .signals import publish_change

logger = logging.getLogger(__name__)

CREDIT_PROGRAM = 'program'
CREDIT_PACKAGE = 'package'
CREDIT_CUSTOM = 'custom'
CREDIT_TYPES = (CREDIT_PROGRAM, CREDIT_PACKAGE, CREDIT_CUSTOM)


def create_program_series(plan, level=None, category=None, location=None, season=None):
    """
    Persist a ``SeriesPlan``: insert programs, then packages, then links.

    Returns ``(programs, packages, links)``.
    """
    with record_operation('create_program_series',
                          programs=len(plan.programs), packages=len(plan.packages)) as log:
        programs = [
            Program.objects.create(
                name=planned.name,
                date=planned.date,
                start_time=planned.start_time,
                end_time=planned.end_time,
                price=planned.price,
                max_registrations=planned.max_registrations,
                level=level,
                category=category,
                location=location,
                season=season,
            )
            for planned in plan.programs
        ]
        log.record_step('programs_created', program_ids=[p.pk for p in programs])

        packages = [
            Package.objects.create(name=planned.name, price=planned.price, location=location)
            for planned in plan.packages
        ]
        log.record_step('packages_created', package_ids=[p.pk for p in packages])

        links = []
        for package, planned in zip(packages, plan.packages):
            for index in planned.program_indexes:
                links.append(ProgramPackage.objects.create(program=programs[index], package=package))
        log.record_step('links_created', link_count=len(links))

    logger.info(
        f"Created series: {len(programs)} programs, {len(packages)} packages, {len(links)} links"
    )
    publish_change(create_program_series, 'programs', 'packages', 'programs_packages')
    return programs, packages, links


def issue_credit(player, amount):
    """Add credit to a player's balance and return the new balance."""
    balance = player.issue_credit(amount)
    logger.info(f"Issued ${Decimal(str(amount)):.2f} credit to player {player.pk}; balance ${balance:.2f}")
    publish_change(issue_credit, 'players')
    return balance


def resolve_credit_amount(registration, credit_type, custom_amount=None):
    """Amount to credit when a registration is removed."""
    if credit_type == CREDIT_PROGRAM:
        return registration.program.price if registration.program else Decimal('0.00')
    if credit_type == CREDIT_PACKAGE:
        return registration.package.price if registration.package else Decimal('0.00')
    if credit_type == CREDIT_CUSTOM:
        try:
            return Decimal(str(custom_amount or 0))
        except ArithmeticError:
            return Decimal('0.00')
    raise ValueError(f"Unknown credit type: {credit_type}")


def remove_registration(registration, credit_type=None, custom_amount=None):
    """
    Delete a registration, optionally issuing credit to the player first.

    The credit is written before the delete and is not reversed if the
    delete fails.
    """
    amount = Decimal('0.00')
    if credit_type:
        amount = resolve_credit_amount(registration, credit_type, custom_amount)

    with record_operation('remove_registration', registration_id=registration.pk,
                          player_id=registration.player_id) as log:
        if amount > 0:
            issue_credit(registration.player, amount)
            log.record_step('credit_issued', player_id=registration.player_id, amount=str(amount))
        registration.delete()
        log.record_step('registration_deleted')

    publish_change(remove_registration, 'registrations')
    return amount


def _credit_players(log, players, amount):
    credited = []
    for player in players:
        issue_credit(player, amount)
        credited.append(player.pk)
        log.record_step('credit_issued', player_id=player.pk, amount=str(amount))
    return credited


def program_players(program):
    return Player.objects.filter(registrations__program=program).distinct()


def package_players(package):
    """Unique players holding a registration that references ``package``."""
    return Player.objects.filter(registrations__package=package).distinct()


def delete_program(program, credit_amount=None):
    """
    Delete a program, cascading its registrations and package links.

    With ``credit_amount`` every registered player is credited first.
    """
    with record_operation('delete_program', program_id=program.pk) as log:
        credited = []
        if credit_amount:
            credited = _credit_players(log, list(program_players(program)), credit_amount)
        program_id = program.pk
        program.delete()
        log.record_step('program_deleted', program_id=program_id)

    logger.info(f"Deleted program {program_id}; credited {len(credited)} player(s)")
    publish_change(delete_program, 'programs', 'programs_packages', 'registrations')
    return credited


def delete_package(package, with_programs=False, credit_amount=None):
    """
    Delete a package and, optionally, every program it contains.

    Package only: links are removed and registrations keep their program.
    With programs: the package is deleted first, then its programs, as two
    separate writes. Returns the number of programs deleted.
    """
    with record_operation('delete_package', package_id=package.pk,
                          with_programs=with_programs) as log:
        program_ids = list(package.program_links.values_list('program_id', flat=True))
        if credit_amount:
            _credit_players(log, list(package_players(package)), credit_amount)

        package_id = package.pk
        package.delete()
        log.record_step('package_deleted', package_id=package_id, program_ids=program_ids)

        deleted_programs = 0
        if with_programs and program_ids:
            deleted_programs = Program.objects.filter(pk__in=program_ids).count()
            Program.objects.filter(pk__in=program_ids).delete()
            log.record_step('programs_deleted', program_ids=program_ids)

    logger.info(f"Deleted package {package_id} and {deleted_programs} program(s)")
    collections = ['packages', 'programs_packages', 'registrations']
    if with_programs:
        collections.append('programs')
    publish_change(delete_package, *collections)
    return deleted_programs


def add_program_to_package(program, package):
    link, created = ProgramPackage.objects.get_or_create(program=program, package=package)
    if created:
        publish_change(add_program_to_package, 'programs_packages')
    return link, created


def remove_program_from_package(link):
    link.delete()
    publish_change(remove_program_from_package, 'programs_packages')


def create_registrations(player, programs, package=None):
    """
    Register one player for several programs in one go.

    A package without programs produces a single package-only registration.
    """
    if not programs and package is None:
        return []
    if programs:
        registrations = [
            Registration.objects.create(player=player, program=program, package=package)
            for program in programs
        ]
    else:
        registrations = [Registration.objects.create(player=player, package=package)]
    logger.info(f"Created {len(registrations)} registration(s) for player {player.pk}")
    publish_change(create_registrations, 'registrations')
    return registrations


def register_for_package(player, package):
    """Expand a package into one registration per linked program."""
    programs = [link.program for link in package.program_links.select_related('program')]
    return create_registrations(player, programs, package=package)
