# Initial schema for roles, permissions, assignments, overrides and the audit trail

from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone
import uuid


class Migration(migrations.Migration):

    initial = True

    dependencies = [
    ]

    operations = [
        migrations.CreateModel(
            name='Role',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True, help_text='Timestamp when the record was last updated')),
                ('name', models.CharField(help_text='Role name, unique among all roles (active or not)', max_length=100, unique=True)),
                ('description', models.TextField(blank=True, default='', help_text='Role description')),
                ('is_active', models.BooleanField(db_index=True, default=True, help_text='Whether this role currently grants anything')),
                ('is_system', models.BooleanField(db_index=True, default=False, help_text='Whether this is a protected built-in role')),
            ],
            options={
                'db_table': 'roles',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['is_active', 'is_system'], name='roles_active_system_idx'),
                    models.Index(fields=['is_active', 'updated_at'], name='roles_active_updated_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='RoleAuditLog',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('action', models.CharField(choices=[('CREATED', 'Created'), ('UPDATED', 'Updated'), ('DELETED', 'Deleted'), ('ASSIGNED', 'Assigned'), ('REVOKED', 'Revoked'), ('ACTIVATED', 'Activated'), ('DEACTIVATED', 'Deactivated'), ('PERMISSION_GRANTED', 'Permission granted'), ('PERMISSION_REVOKED', 'Permission revoked'), ('BULK_ASSIGNED', 'Bulk assigned'), ('BULK_REVOKED', 'Bulk revoked')], db_index=True, help_text='Kind of mutation recorded', max_length=30)),
                ('old_value', models.JSONField(blank=True, help_text='State before the mutation', null=True)),
                ('new_value', models.JSONField(blank=True, help_text='State after the mutation', null=True)),
                ('timestamp', models.DateTimeField(db_index=True, default=django.utils.timezone.now)),
                ('ip_address', models.GenericIPAddressField(blank=True, null=True)),
                ('user_agent', models.TextField(blank=True, null=True)),
                ('user_id', models.CharField(blank=True, db_index=True, help_text='Actor who performed the mutation (null for system)', max_length=255, null=True)),
                ('role_id', models.UUIDField(blank=True, db_index=True, help_text='Role the mutation applies to', null=True)),
            ],
            options={
                'db_table': 'role_audit_logs',
                'ordering': ['-timestamp'],
                'indexes': [
                    models.Index(fields=['role_id', 'timestamp'], name='audit_role_ts_idx'),
                    models.Index(fields=['user_id', 'timestamp'], name='audit_user_ts_idx'),
                    models.Index(fields=['action', 'timestamp'], name='audit_action_ts_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='Permission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True, help_text='Timestamp when the record was last updated')),
                ('entity', models.CharField(db_index=True, help_text="Resource type this permission applies to (e.g., 'user')", max_length=100)),
                ('field', models.CharField(default='*', help_text="Field name, or '*' for all fields", max_length=100)),
                ('action', models.CharField(choices=[('create', 'Create'), ('read', 'Read'), ('update', 'Update'), ('delete', 'Delete'), ('admin', 'Admin')], db_index=True, help_text='Action granted on the entity', max_length=20)),
                ('mask_type', models.CharField(choices=[('none', 'None'), ('partial', 'Partial'), ('hidden', 'Hidden'), ('encrypted', 'Encrypted'), ('redacted', 'Redacted')], default='none', help_text='How a matched field should be rendered to the caller', max_length=20)),
                ('display_name', models.CharField(blank=True, default='', max_length=255)),
                ('description', models.TextField(blank=True, default='')),
                ('role', models.ForeignKey(help_text='Role that owns this permission', on_delete=django.db.models.deletion.CASCADE, related_name='permissions', to='rbac.role')),
            ],
            options={
                'db_table': 'permissions',
                'ordering': ['entity', 'action', 'field'],
                'indexes': [
                    models.Index(fields=['role', 'entity', 'action'], name='perm_role_entity_action_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('role', 'entity', 'field', 'action'), name='uniq_permission_natural_key'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ResourcePermission',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True, help_text='Timestamp when the record was last updated')),
                ('resource_type', models.CharField(help_text='Resource type (matches Permission.entity)', max_length=100)),
                ('resource_id', models.CharField(help_text='Identifier of one concrete resource instance', max_length=255)),
                ('action', models.CharField(help_text='Action this override applies to', max_length=50)),
                ('granted', models.BooleanField(default=True, help_text='True = allow, False = explicit deny')),
                ('granted_at', models.DateTimeField(default=django.utils.timezone.now, help_text='When the decision was made')),
                ('granted_by', models.CharField(blank=True, help_text='Actor who made the decision (null for system)', max_length=255, null=True)),
                ('role', models.ForeignKey(help_text='Role this override applies to', on_delete=django.db.models.deletion.CASCADE, related_name='resource_permissions', to='rbac.role')),
            ],
            options={
                'db_table': 'resource_permissions',
                'ordering': ['resource_type', 'resource_id', 'action'],
                'indexes': [
                    models.Index(fields=['resource_type', 'resource_id'], name='resperm_resource_idx'),
                ],
                'constraints': [
                    models.UniqueConstraint(fields=('role', 'resource_type', 'resource_id', 'action'), name='uniq_resource_permission_key'),
                ],
            },
        ),
        migrations.CreateModel(
            name='UserRole',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, help_text='Unique identifier', primary_key=True, serialize=False)),
                ('created_at', models.DateTimeField(auto_now_add=True, db_index=True, help_text='Timestamp when the record was created')),
                ('updated_at', models.DateTimeField(auto_now=True, db_index=True, help_text='Timestamp when the record was last updated')),
                ('user_id', models.CharField(db_index=True, help_text='External user identifier', max_length=255)),
                ('assigned_by', models.CharField(blank=True, help_text='Actor who made the assignment (null for system)', max_length=255, null=True)),
                ('role', models.ForeignKey(help_text='Role assigned to the user', on_delete=django.db.models.deletion.PROTECT, related_name='user_roles', to='rbac.role')),
            ],
            options={
                'db_table': 'user_roles',
                'ordering': ['-created_at'],
                'constraints': [
                    models.UniqueConstraint(fields=('user_id', 'role'), name='uniq_user_role'),
                ],
            },
        ),
    ]
