"""
RBAC REST API views.

Implements endpoints for:
- Role management (CRUD, lifecycle, batch operations, permission changes)
- Permission management (CRUD, stats)
- Resource permission overrides
- User-role assignments
- Access checks
- Audit log viewing

Views are thin: they validate input with serializers, call the services
and render the result. Service exceptions are turned into responses by
apps.core.exceptions.custom_exception_handler.
"""
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView
from drf_spectacular.utils import extend_schema, extend_schema_view, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from apps.core.permissions import RequiresAccess, requires_access
from apps.rbac.services import (
    AccessEvaluator, AssignmentFilters, AssignmentService, AuditContext,
    AuditService, PermissionFilters, PermissionService,
    ResourcePermissionFilters, ResourcePermissionService, RoleFilters,
    RoleService,
)
from apps.rbac.serializers import (
    AccessCheckSerializer, AssignmentListQuerySerializer, AssignRoleSerializer,
    AuditLogQuerySerializer, AuditLogSerializer, BulkAssignmentSerializer,
    PermissionCreateSerializer, PermissionIdsSerializer, PermissionListQuerySerializer,
    PermissionSerializer, PermissionUpdateSerializer, ResourcePermissionCreateSerializer,
    ResourcePermissionListQuerySerializer, ResourcePermissionSerializer,
    ResourcePermissionUpdateSerializer,
    RoleBatchCreateSerializer, RoleBulkDeleteSerializer, RoleBulkUpdateSerializer,
    RoleCleanupSerializer, RoleCreateSerializer, RoleDetailSerializer,
    RoleFromTemplateSerializer, RoleListQuerySerializer, RoleSerializer,
    RoleUpdateSerializer, UserRoleSerializer,
)


def _query_bool(request, name):
    value = request.query_params.get(name)
    if value is None or value == '':
        return None
    return value.lower() in ('1', 'true', 'yes')


class RBACAPIView(APIView):
    """Base view: authenticated callers whose roles allow the declared access."""

    permission_classes = [IsAuthenticated, RequiresAccess]

    def audit_context(self):
        return AuditContext.from_request(self.request)

    def validated_query(self, serializer_class):
        """Validated query parameters; bad values become a 422."""
        serializer = serializer_class(data=self.request.query_params)
        serializer.is_valid(raise_exception=True)
        return serializer.validated_data

    def paginated(self, page, serializer_class):
        return Response({
            'results': serializer_class(page.items, many=True).data,
            'pagination': page.pagination,
        })


# ===== ROLES =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='List roles',
        parameters=[
            OpenApiParameter('search', OpenApiTypes.STR, description='Match name or description'),
            OpenApiParameter('is_active', OpenApiTypes.BOOL),
            OpenApiParameter('is_system', OpenApiTypes.BOOL),
            OpenApiParameter('created_after', OpenApiTypes.DATETIME),
            OpenApiParameter('created_before', OpenApiTypes.DATETIME),
            OpenApiParameter('sort_by', OpenApiTypes.STR,
                             description='name, created_at, updated_at, permission_count or user_count'),
            OpenApiParameter('sort_order', OpenApiTypes.STR, description='asc or desc'),
            OpenApiParameter('page', OpenApiTypes.INT),
            OpenApiParameter('page_size', OpenApiTypes.INT),
        ],
        responses={200: RoleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create role',
        request=RoleCreateSerializer,
        responses={201: RoleDetailSerializer, 409: OpenApiTypes.OBJECT, 422: OpenApiTypes.OBJECT},
    ),
)
class RoleListView(RBACAPIView):
    """
    GET /v1/roles - list roles with filters, sorting and pagination
    POST /v1/roles - create a role, optionally with permissions
    """

    required_access = {'GET': ('role', 'read'), 'POST': ('role', 'create')}

    def get(self, request):
        params = self.validated_query(RoleListQuerySerializer)

        filters = RoleFilters(
            search=params.get('search') or None,
            is_active=params.get('is_active'),
            is_system=params.get('is_system'),
            created_after=params.get('created_after'),
            created_before=params.get('created_before'),
            sort_by=params['sort_by'],
            sort_order=params['sort_order'],
        )
        page = RoleService.list_roles(filters, params['page'], params.get('page_size'))
        return self.paginated(page, RoleSerializer)

    def post(self, request):
        serializer = RoleCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        role = RoleService.create_role(
            data['name'],
            description=data.get('description', ''),
            is_active=data.get('is_active', True),
            is_system=data.get('is_system', False),
            permissions=data.get('permissions'),
            context=self.audit_context(),
        )
        return Response(RoleDetailSerializer(role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create roles in one transaction',
        request=RoleBatchCreateSerializer,
        responses={201: RoleSerializer(many=True), 400: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    )
)
@requires_access('role', 'create')
class RoleBatchCreateView(RBACAPIView):
    """POST /v1/roles/batch"""

    def post(self, request):
        serializer = RoleBatchCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        roles = RoleService.create_roles_batch(
            serializer.validated_data['roles'], context=self.audit_context()
        )
        return Response(RoleSerializer(roles, many=True).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Update several roles',
        description='Each update runs in its own transaction; results are reported per role.',
        request=RoleBulkUpdateSerializer,
        responses={200: OpenApiTypes.OBJECT},
    )
)
@requires_access('role', 'update')
class RoleBulkUpdateView(RBACAPIView):
    """POST /v1/roles/bulk-update"""

    def post(self, request):
        serializer = RoleBulkUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = RoleService.bulk_update_roles(
            serializer.validated_data['updates'], context=self.audit_context()
        )
        return Response(result.to_dict())


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete several roles',
        request=RoleBulkDeleteSerializer,
        responses={200: OpenApiTypes.OBJECT},
    )
)
@requires_access('role', 'delete')
class RoleBulkDeleteView(RBACAPIView):
    """POST /v1/roles/bulk-delete"""

    def post(self, request):
        serializer = RoleBulkDeleteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = RoleService.delete_roles(
            serializer.validated_data['role_ids'],
            permanent=serializer.validated_data['permanent'],
            context=self.audit_context(),
        )
        return Response(result.to_dict())


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete stale inactive roles',
        request=RoleCleanupSerializer,
        responses={200: OpenApiTypes.OBJECT},
    )
)
@requires_access('role', 'delete')
class RoleCleanupView(RBACAPIView):
    """POST /v1/roles/cleanup"""

    def post(self, request):
        serializer = RoleCleanupSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        outcome = RoleService.cleanup_inactive_roles(
            serializer.validated_data['older_than_days'], context=self.audit_context()
        )
        return Response({
            'cleaned_count': outcome.cleaned_count,
            'failed_count': outcome.failed_count,
            **outcome.results.to_dict(),
        })


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Roles'], summary='Role statistics', responses={200: OpenApiTypes.OBJECT})
)
@requires_access('role', 'read')
class RoleStatsView(RBACAPIView):
    """GET /v1/roles/stats"""

    def get(self, request):
        return Response(RoleService.get_role_stats())


@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Roles'],
        summary='Get role details',
        responses={200: RoleDetailSerializer, 404: OpenApiTypes.OBJECT},
    ),
    patch=extend_schema(
        tags=['RBAC - Roles'],
        summary='Update role',
        description='`permissions`, when present, replaces the role\'s whole permission set.',
        request=RoleUpdateSerializer,
        responses={200: RoleDetailSerializer, 403: OpenApiTypes.OBJECT,
                   404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
    delete=extend_schema(
        tags=['RBAC - Roles'],
        summary='Delete role',
        description='Soft delete by default; `permanent=true` hard deletes, `force=true` also revokes assignments.',
        parameters=[
            OpenApiParameter('permanent', OpenApiTypes.BOOL),
            OpenApiParameter('force', OpenApiTypes.BOOL),
        ],
        responses={200: OpenApiTypes.OBJECT, 204: None, 403: OpenApiTypes.OBJECT,
                   404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
)
class RoleDetailView(RBACAPIView):
    """
    GET /v1/roles/{id}
    PATCH /v1/roles/{id}
    DELETE /v1/roles/{id}
    """

    required_access = {
        'GET': ('role', 'read'),
        'PATCH': ('role', 'update'),
        'DELETE': ('role', 'delete'),
    }

    def get(self, request, role_id):
        role = RoleService.get_role(role_id)
        return Response(RoleDetailSerializer(role).data)

    def patch(self, request, role_id):
        serializer = RoleUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = RoleService.update_role(role_id, serializer.validated_data, context=self.audit_context())
        return Response(RoleDetailSerializer(role).data)

    def delete(self, request, role_id):
        context = self.audit_context()
        if _query_bool(request, 'force'):
            revoked = RoleService.force_delete_role(role_id, context=context)
            return Response({'deleted': True, 'revoked_user_ids': revoked})
        if _query_bool(request, 'permanent'):
            RoleService.hard_delete_role(role_id, context=context)
            return Response(status=status.HTTP_204_NO_CONTENT)
        role = RoleService.soft_delete_role(role_id, context=context)
        return Response(RoleSerializer(role).data)


class RoleLifecycleView(RBACAPIView):
    """Shared POST handler for single-role state transitions."""

    required_access = ('role', 'update')
    operation = None

    def post(self, request, role_id):
        role = getattr(RoleService, self.operation)(role_id, context=self.audit_context())
        return Response(RoleSerializer(role).data)


@extend_schema_view(post=extend_schema(tags=['RBAC - Roles'], summary='Activate role', request=None,
                                       responses={200: RoleSerializer}))
class RoleActivateView(RoleLifecycleView):
    """POST /v1/roles/{id}/activate"""
    operation = 'activate_role'


@extend_schema_view(post=extend_schema(tags=['RBAC - Roles'], summary='Deactivate role', request=None,
                                       responses={200: RoleSerializer, 409: OpenApiTypes.OBJECT}))
class RoleDeactivateView(RoleLifecycleView):
    """POST /v1/roles/{id}/deactivate"""
    operation = 'deactivate_role'


@extend_schema_view(post=extend_schema(tags=['RBAC - Roles'], summary='Restore soft-deleted role', request=None,
                                       responses={200: RoleSerializer, 409: OpenApiTypes.OBJECT}))
class RoleRestoreView(RoleLifecycleView):
    """POST /v1/roles/{id}/restore"""
    operation = 'restore_role'


@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Roles'],
        summary='Create role from template',
        request=RoleFromTemplateSerializer,
        responses={201: RoleDetailSerializer, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    )
)
@requires_access('role', 'create')
class RoleCloneView(RBACAPIView):
    """POST /v1/roles/{id}/clone"""

    def post(self, request, role_id):
        serializer = RoleFromTemplateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = RoleService.create_role_from_template(
            role_id,
            serializer.validated_data['name'],
            description=serializer.validated_data['description'],
            context=self.audit_context(),
        )
        return Response(RoleDetailSerializer(role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Roles'], summary='Check whether a role can be deleted',
                      responses={200: OpenApiTypes.OBJECT})
)
@requires_access('role', 'read')
class RoleCanDeleteView(RBACAPIView):
    """GET /v1/roles/{id}/can-delete"""

    def get(self, request, role_id):
        check = RoleService.can_delete_role(role_id)
        return Response({'can_delete': check.can_delete, 'reason': check.reason})


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Roles'], summary='List role permissions',
                      responses={200: PermissionSerializer(many=True)}),
    post=extend_schema(tags=['RBAC - Roles'], summary='Add permissions to role',
                       request=PermissionIdsSerializer,
                       responses={200: RoleDetailSerializer, 404: OpenApiTypes.OBJECT}),
)
class RolePermissionsView(RBACAPIView):
    """
    GET /v1/roles/{id}/permissions
    POST /v1/roles/{id}/permissions - attach permissions by id
    """

    required_access = {'GET': ('permission', 'read'), 'POST': ('role', 'update')}

    def get(self, request, role_id):
        RoleService.get_role(role_id)
        permissions = PermissionService.get_permissions_by_role(role_id)
        return Response(PermissionSerializer(permissions, many=True).data)

    def post(self, request, role_id):
        serializer = PermissionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = RoleService.add_permissions_to_role(
            role_id, serializer.validated_data['permission_ids'], context=self.audit_context()
        )
        return Response(RoleDetailSerializer(role).data)


@extend_schema_view(
    post=extend_schema(tags=['RBAC - Roles'], summary='Remove permissions from role',
                       request=PermissionIdsSerializer, responses={200: RoleDetailSerializer})
)
@requires_access('role', 'update')
class RolePermissionsRemoveView(RBACAPIView):
    """POST /v1/roles/{id}/permissions/remove"""

    def post(self, request, role_id):
        serializer = PermissionIdsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        role = RoleService.remove_permissions_from_role(
            role_id, serializer.validated_data['permission_ids'], context=self.audit_context()
        )
        return Response(RoleDetailSerializer(role).data)


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Roles'], summary='List users assigned to role',
                      responses={200: OpenApiTypes.OBJECT})
)
@requires_access('user_role', 'read')
class RoleUsersView(RBACAPIView):
    """GET /v1/roles/{id}/users"""

    def get(self, request, role_id):
        role = RoleService.get_role(role_id)
        user_ids = AssignmentService.get_role_users(role.id)
        return Response({'role_id': str(role.id), 'user_ids': user_ids, 'count': len(user_ids)})


# ===== PERMISSIONS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Permissions'],
        summary='List permissions',
        parameters=[
            OpenApiParameter('search', OpenApiTypes.STR),
            OpenApiParameter('entity', OpenApiTypes.STR),
            OpenApiParameter('action', OpenApiTypes.STR),
            OpenApiParameter('field', OpenApiTypes.STR),
            OpenApiParameter('mask_type', OpenApiTypes.STR),
            OpenApiParameter('role_id', OpenApiTypes.UUID),
            OpenApiParameter('page', OpenApiTypes.INT),
            OpenApiParameter('page_size', OpenApiTypes.INT),
        ],
        responses={200: PermissionSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Permissions'],
        summary='Create permission',
        request=PermissionCreateSerializer,
        responses={201: PermissionSerializer, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
)
class PermissionListView(RBACAPIView):
    """
    GET /v1/permissions
    POST /v1/permissions
    """

    required_access = {'GET': ('permission', 'read'), 'POST': ('permission', 'create')}

    def get(self, request):
        params = self.validated_query(PermissionListQuerySerializer)
        filters = PermissionFilters(
            search=params.get('search') or None,
            entity=params.get('entity') or None,
            action=params.get('action') or None,
            field=params.get('field') or None,
            mask_type=params.get('mask_type') or None,
            role_id=params.get('role_id'),
        )
        page = PermissionService.list_permissions(filters, params['page'], params.get('page_size'))
        return self.paginated(page, PermissionSerializer)

    def post(self, request):
        serializer = PermissionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        permission = PermissionService.create_permission(
            data['role_id'],
            data['entity'],
            field=data['field'],
            action=data['action'],
            mask_type=data['mask_type'],
            display_name=data['display_name'],
            description=data['description'],
            context=self.audit_context(),
        )
        return Response(PermissionSerializer(permission).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Permissions'], summary='Permission statistics',
                      responses={200: OpenApiTypes.OBJECT})
)
@requires_access('permission', 'read')
class PermissionStatsView(RBACAPIView):
    """GET /v1/permissions/stats"""

    def get(self, request):
        stats = PermissionService.get_permission_stats()
        stats['entities'] = PermissionService.get_unique_entities()
        stats['actions'] = PermissionService.get_unique_actions()
        return Response(stats)


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Permissions'], summary='Get permission',
                      responses={200: PermissionSerializer, 404: OpenApiTypes.OBJECT}),
    patch=extend_schema(tags=['RBAC - Permissions'], summary='Update permission',
                        request=PermissionUpdateSerializer,
                        responses={200: PermissionSerializer, 409: OpenApiTypes.OBJECT}),
    delete=extend_schema(tags=['RBAC - Permissions'], summary='Delete permission', responses={204: None}),
)
class PermissionDetailView(RBACAPIView):
    """
    GET /v1/permissions/{id}
    PATCH /v1/permissions/{id}
    DELETE /v1/permissions/{id}
    """

    required_access = {
        'GET': ('permission', 'read'),
        'PATCH': ('permission', 'update'),
        'DELETE': ('permission', 'delete'),
    }

    def get(self, request, permission_id):
        return Response(PermissionSerializer(PermissionService.get_permission(permission_id)).data)

    def patch(self, request, permission_id):
        serializer = PermissionUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        permission = PermissionService.update_permission(
            permission_id, serializer.validated_data, context=self.audit_context()
        )
        return Response(PermissionSerializer(permission).data)

    def delete(self, request, permission_id):
        PermissionService.delete_permission(permission_id, context=self.audit_context())
        return Response(status=status.HTTP_204_NO_CONTENT)


# ===== RESOURCE PERMISSIONS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Resource Permissions'],
        summary='List resource permissions',
        parameters=[
            OpenApiParameter('search', OpenApiTypes.STR),
            OpenApiParameter('resource_type', OpenApiTypes.STR),
            OpenApiParameter('resource_id', OpenApiTypes.STR),
            OpenApiParameter('action', OpenApiTypes.STR),
            OpenApiParameter('granted', OpenApiTypes.BOOL),
            OpenApiParameter('role_id', OpenApiTypes.UUID),
            OpenApiParameter('page', OpenApiTypes.INT),
            OpenApiParameter('page_size', OpenApiTypes.INT),
        ],
        responses={200: ResourcePermissionSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Resource Permissions'],
        summary='Create resource permissions',
        description='Creates one override per action. `granted=false` records an explicit deny.',
        request=ResourcePermissionCreateSerializer,
        responses={201: ResourcePermissionSerializer(many=True), 409: OpenApiTypes.OBJECT},
    ),
)
class ResourcePermissionListView(RBACAPIView):
    """
    GET /v1/resource-permissions
    POST /v1/resource-permissions
    """

    required_access = {
        'GET': ('resource_permission', 'read'),
        'POST': ('resource_permission', 'create'),
    }

    def get(self, request):
        params = self.validated_query(ResourcePermissionListQuerySerializer)
        filters = ResourcePermissionFilters(
            search=params.get('search') or None,
            resource_type=params.get('resource_type') or None,
            resource_id=params.get('resource_id') or None,
            action=params.get('action') or None,
            granted=params['granted'],
            role_id=params.get('role_id'),
        )
        page = ResourcePermissionService.list_resource_permissions(
            filters, params['page'], params.get('page_size')
        )
        return self.paginated(page, ResourcePermissionSerializer)

    def post(self, request):
        serializer = ResourcePermissionCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        created = ResourcePermissionService.create_resource_permissions(
            data['role_id'],
            data['resource_type'],
            data['resource_id'],
            data['actions'],
            granted=data['granted'],
            context=self.audit_context(),
        )
        return Response(
            ResourcePermissionSerializer(created, many=True).data,
            status=status.HTTP_201_CREATED,
        )


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Resource Permissions'], summary='Get resource permission',
                      responses={200: ResourcePermissionSerializer}),
    patch=extend_schema(tags=['RBAC - Resource Permissions'], summary='Update resource permission',
                        request=ResourcePermissionUpdateSerializer,
                        responses={200: ResourcePermissionSerializer, 409: OpenApiTypes.OBJECT}),
    delete=extend_schema(tags=['RBAC - Resource Permissions'], summary='Delete resource permission',
                         responses={204: None}),
)
class ResourcePermissionDetailView(RBACAPIView):
    """
    GET /v1/resource-permissions/{id}
    PATCH /v1/resource-permissions/{id}
    DELETE /v1/resource-permissions/{id}
    """

    required_access = {
        'GET': ('resource_permission', 'read'),
        'PATCH': ('resource_permission', 'update'),
        'DELETE': ('resource_permission', 'delete'),
    }

    def get(self, request, resource_permission_id):
        resource_permission = ResourcePermissionService.get_resource_permission(resource_permission_id)
        return Response(ResourcePermissionSerializer(resource_permission).data)

    def patch(self, request, resource_permission_id):
        serializer = ResourcePermissionUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        resource_permission = ResourcePermissionService.update_resource_permission(
            resource_permission_id, serializer.validated_data, context=self.audit_context()
        )
        return Response(ResourcePermissionSerializer(resource_permission).data)

    def delete(self, request, resource_permission_id):
        ResourcePermissionService.delete_resource_permission(
            resource_permission_id, context=self.audit_context()
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Resource Permissions'], summary='Resource permission statistics',
                      responses={200: OpenApiTypes.OBJECT})
)
@requires_access('resource_permission', 'read')
class ResourcePermissionStatsView(RBACAPIView):
    """GET /v1/resource-permissions/stats"""

    def get(self, request):
        return Response(ResourcePermissionService.get_resource_permission_stats())


# ===== ASSIGNMENTS =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Assignments'],
        summary='List assignments',
        parameters=[
            OpenApiParameter('user_id', OpenApiTypes.STR),
            OpenApiParameter('role_id', OpenApiTypes.UUID),
            OpenApiParameter('page', OpenApiTypes.INT),
            OpenApiParameter('page_size', OpenApiTypes.INT),
        ],
        responses={200: UserRoleSerializer(many=True)},
    ),
    post=extend_schema(
        tags=['RBAC - Assignments'],
        summary='Assign role to user',
        request=AssignRoleSerializer,
        responses={201: UserRoleSerializer, 404: OpenApiTypes.OBJECT, 409: OpenApiTypes.OBJECT},
    ),
)
class AssignmentListView(RBACAPIView):
    """
    GET /v1/assignments
    POST /v1/assignments
    """

    required_access = {'GET': ('user_role', 'read'), 'POST': ('user_role', 'create')}

    def get(self, request):
        params = self.validated_query(AssignmentListQuerySerializer)
        filters = AssignmentFilters(
            user_id=params.get('user_id') or None,
            role_id=params.get('role_id'),
        )
        page = AssignmentService.list_assignments(filters, params['page'], params.get('page_size'))
        return self.paginated(page, UserRoleSerializer)

    def post(self, request):
        serializer = AssignRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        user_role = AssignmentService.assign_role(
            serializer.validated_data['user_id'],
            serializer.validated_data['role_id'],
            context=self.audit_context(),
        )
        return Response(UserRoleSerializer(user_role).data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    post=extend_schema(tags=['RBAC - Assignments'], summary='Revoke role from user',
                       request=AssignRoleSerializer, responses={204: None, 404: OpenApiTypes.OBJECT})
)
@requires_access('user_role', 'delete')
class AssignmentRevokeView(RBACAPIView):
    """POST /v1/assignments/revoke"""

    def post(self, request):
        serializer = AssignRoleSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        AssignmentService.revoke_role(
            serializer.validated_data['user_id'],
            serializer.validated_data['role_id'],
            context=self.audit_context(),
        )
        return Response(status=status.HTTP_204_NO_CONTENT)


@extend_schema_view(
    post=extend_schema(tags=['RBAC - Assignments'], summary='Assign roles to users',
                       request=BulkAssignmentSerializer, responses={200: OpenApiTypes.OBJECT})
)
@requires_access('user_role', 'create')
class BulkAssignView(RBACAPIView):
    """POST /v1/assignments/bulk-assign"""

    def post(self, request):
        serializer = BulkAssignmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = AssignmentService.bulk_assign(
            serializer.validated_data['user_ids'],
            serializer.validated_data['role_ids'],
            context=self.audit_context(),
        )
        return Response(result.to_dict())


@extend_schema_view(
    post=extend_schema(tags=['RBAC - Assignments'], summary='Revoke roles from users',
                       request=BulkAssignmentSerializer, responses={200: OpenApiTypes.OBJECT})
)
@requires_access('user_role', 'delete')
class BulkRevokeView(RBACAPIView):
    """POST /v1/assignments/bulk-revoke"""

    def post(self, request):
        serializer = BulkAssignmentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        result = AssignmentService.bulk_revoke(
            serializer.validated_data['user_ids'],
            serializer.validated_data['role_ids'],
            context=self.audit_context(),
        )
        return Response(result.to_dict())


@extend_schema_view(
    get=extend_schema(tags=['RBAC - Assignments'], summary='List roles of a user',
                      responses={200: RoleSerializer(many=True)})
)
@requires_access('user_role', 'read')
class UserRolesView(RBACAPIView):
    """GET /v1/users/{user_id}/roles"""

    def get(self, request, user_id):
        roles = AssignmentService.get_user_roles(user_id)
        return Response(RoleSerializer(roles, many=True).data)


# ===== ACCESS CHECKS =====

@extend_schema_view(
    post=extend_schema(
        tags=['RBAC - Access'],
        summary='Evaluate access',
        description='''
Evaluate whether a user (through all assigned roles) or a single role may
perform an action. The response reports which level decided:
RESOURCE_OVERRIDE, ENTITY_DEFAULT or IMPLICIT_DENY.
        ''',
        request=AccessCheckSerializer,
        responses={200: OpenApiTypes.OBJECT},
    )
)
@requires_access('role', 'read')
class AccessCheckView(RBACAPIView):
    """POST /v1/access/check"""

    def post(self, request):
        serializer = AccessCheckSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data
        args = (data['entity'], data['action'], data['field'], data['resource_id'])
        if data.get('role_id'):
            decision = AccessEvaluator.evaluate(data['role_id'], *args)
        else:
            decision = AccessEvaluator.evaluate_for_user(data['user_id'], *args)
        return Response(decision.to_dict())


# ===== AUDIT =====

@extend_schema_view(
    get=extend_schema(
        tags=['RBAC - Audit'],
        summary='List audit logs',
        parameters=[
            OpenApiParameter('role_id', OpenApiTypes.UUID),
            OpenApiParameter('user_id', OpenApiTypes.STR, description='Actor who performed the change'),
            OpenApiParameter('action', OpenApiTypes.STR, description='Comma separated audit actions'),
            OpenApiParameter('from_date', OpenApiTypes.DATETIME),
            OpenApiParameter('to_date', OpenApiTypes.DATETIME),
            OpenApiParameter('search', OpenApiTypes.STR),
            OpenApiParameter('page', OpenApiTypes.INT),
            OpenApiParameter('page_size', OpenApiTypes.INT),
        ],
        responses={200: AuditLogSerializer(many=True)},
    )
)
@requires_access('audit_log', 'read')
class AuditLogListView(RBACAPIView):
    """GET /v1/audit-logs"""

    def get(self, request):
        params = self.validated_query(AuditLogQuerySerializer)
        actions = [a for a in (params.get('action') or '').split(',') if a]
        page = AuditService.query(
            role_id=params.get('role_id'),
            user_id=params.get('user_id') or None,
            actions=actions or None,
            date_from=params.get('from_date'),
            date_to=params.get('to_date'),
            search=params.get('search') or None,
            page=params['page'],
            page_size=params.get('page_size'),
        )
        return self.paginated(page, AuditLogSerializer)
