"""
Auth: JWT login/refresh. RBAC: roles, permissions, users. Audit log and notifications.
Permission check on every endpoint via HasPermission + permission_code.
"""
from django.db.models import Q
from rest_framework import generics
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework_simplejwt.views import TokenObtainPairView
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import User, Role, Permission, AuditLog, Notification
from .serializers import (
    UserSerializer, UserCreateSerializer, RoleSerializer, PermissionSerializer,
    AuditLogSerializer, NotificationSerializer,
)
from .permissions import HasPermission


class CustomTokenObtainPairSerializer(TokenObtainPairSerializer):
    def validate(self, attrs):
        data = super().validate(attrs)
        data['user'] = UserSerializer(self.user).data
        return data


class CustomTokenObtainPairView(TokenObtainPairView):
    serializer_class = CustomTokenObtainPairSerializer


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def me(request):
    """Current user + permissions (for frontend RoleGuard)."""
    return Response(UserSerializer(request.user).data)


# ---------- RBAC (Manager/Admin) ----------
class PermissionList(generics.ListAPIView):
    queryset = Permission.objects.all()
    serializer_class = PermissionSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_roles'


class RoleListCreate(generics.ListCreateAPIView):
    queryset = Role.objects.prefetch_related('permissions')
    serializer_class = RoleSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_roles'


class RoleDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = Role.objects.prefetch_related('permissions')
    serializer_class = RoleSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_roles'


class UserList(generics.ListCreateAPIView):
    queryset = User.objects.select_related('role')
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_staff'

    def get_serializer_class(self):
        return UserCreateSerializer if self.request.method == 'POST' else UserSerializer


class UserDetail(generics.RetrieveUpdateDestroyAPIView):
    queryset = User.objects.select_related('role')
    serializer_class = UserSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'manage_staff'


class AuditLogList(generics.ListAPIView):
    queryset = AuditLog.objects.select_related('user')
    serializer_class = AuditLogSerializer
    permission_classes = [IsAuthenticated, HasPermission]
    permission_code = 'view_audit_logs'
    filterset_fields = ['action', 'model_name', 'object_id']


# ---------- Notifications ----------
class NotificationList(generics.ListAPIView):
    """Broadcast notifications plus the ones addressed to the current user."""
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]
    filterset_fields = ['kind', 'is_read']

    def get_queryset(self):
        user = self.request.user
        return Notification.objects.filter(Q(recipient__isnull=True) | Q(recipient=user))


class NotificationDetail(generics.RetrieveUpdateAPIView):
    serializer_class = NotificationSerializer
    permission_classes = [IsAuthenticated]

    def get_queryset(self):
        user = self.request.user
        return Notification.objects.filter(Q(recipient__isnull=True) | Q(recipient=user))
