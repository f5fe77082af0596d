"""
Management command to hard delete stale inactive roles.

Only inactive, non-system roles without assignments whose last update is
older than the cutoff are removed. Meant to be run from cron.
"""
from django.core.management.base import BaseCommand, CommandError

from apps.core.exceptions import WardenException
from apps.rbac.services import AuditContext, RoleService


class Command(BaseCommand):
    help = 'Delete inactive roles not updated for the given number of days'

    def add_arguments(self, parser):
        parser.add_argument(
            '--days',
            type=int,
            default=None,
            help='Age cutoff in days (default: RBAC_CLEANUP_DEFAULT_DAYS)',
        )

    def handle(self, *args, **options):
        try:
            outcome = RoleService.cleanup_inactive_roles(
                options.get('days'), context=AuditContext.system()
            )
        except WardenException as exc:
            raise CommandError(exc.message)

        for item in outcome.results.results:
            if item.success:
                self.stdout.write(f'  Deleted: {item.id}')
            else:
                self.stdout.write(self.style.ERROR(f'  Failed: {item.id} ({item.error["message"]})'))

        self.stdout.write(
            self.style.SUCCESS(
                f'✓ Cleanup complete: {outcome.cleaned_count} deleted, {outcome.failed_count} failed'
            )
        )
