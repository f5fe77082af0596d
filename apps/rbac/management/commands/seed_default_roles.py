"""
Management command to seed the default system roles.

Creates the roles defined in settings.RBAC_DEFAULT_ROLES (admin, user and
moderator by default) with their permission sets. This command is
idempotent and safe to re-run: existing roles have their description and
permissions synced to the configuration.
"""
from django.conf import settings
from django.core.management.base import BaseCommand, CommandError

from apps.core.exceptions import WardenException
from apps.rbac.models import WILDCARD_FIELD, MaskType, Role
from apps.rbac.services import AuditContext, RoleService


def _spec_key(spec):
    return (spec['entity'], spec.get('field') or WILDCARD_FIELD, spec['action'],
            str(spec.get('mask_type') or MaskType.NONE))


class Command(BaseCommand):
    help = 'Seed default system roles (idempotent)'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would change without writing anything',
        )

    def handle(self, *args, **options):
        """Create or sync every configured default role."""
        definitions = getattr(settings, 'RBAC_DEFAULT_ROLES', {})
        if not definitions:
            raise CommandError('RBAC_DEFAULT_ROLES is empty; nothing to seed')

        dry_run = options.get('dry_run')
        context = AuditContext.system()
        created_count = 0
        updated_count = 0

        self.stdout.write('Seeding default roles...\n')

        for name, config in definitions.items():
            description = config.get('description', '')
            permissions = [dict(p) for p in config.get('permissions', [])]
            role = Role.objects.filter(name=name).first()

            try:
                if role is None:
                    if not dry_run:
                        RoleService.create_role(
                            name,
                            description=description,
                            is_system=True,
                            permissions=permissions,
                            context=context,
                        )
                    created_count += 1
                    self.stdout.write(self.style.SUCCESS(f'✓ Created: {name}'))
                    continue

                current = {(p.entity, p.field, p.action, p.mask_type) for p in role.permissions.all()}
                target = {_spec_key(p) for p in permissions}
                if role.description == description and current == target:
                    self.stdout.write(self.style.HTTP_INFO(f'  Exists: {name}'))
                    continue

                if not dry_run:
                    RoleService.update_role(
                        role.id,
                        {'description': description, 'permissions': permissions},
                        context=context,
                    )
                updated_count += 1
                self.stdout.write(
                    self.style.WARNING(f'↻ Updated: {name} (+{len(target - current)} -{len(current - target)})')
                )
            except WardenException as exc:
                raise CommandError(f'Failed to seed role {name}: {exc.message}')

        prefix = '[dry run] ' if dry_run else ''
        self.stdout.write(
            self.style.SUCCESS(
                f'\n{prefix}✓ Seeding complete: {created_count} created, {updated_count} updated, '
                f'{len(definitions) - created_count - updated_count} unchanged'
            )
        )
