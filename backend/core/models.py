"""
Core models: User, Role, Permission, AuditLog, Notification.
Dynamic RBAC: permissions = actions; roles = collections of permissions.
"""
from django.db import models
from django.contrib.auth.models import AbstractUser
from django.conf import settings


class Permission(models.Model):
    """Action-based permission (e.g. create_booking, post_payment, view_accounts)."""
    code = models.CharField(max_length=64, unique=True)
    name = models.CharField(max_length=128)
    description = models.TextField(blank=True)

    class Meta:
        db_table = 'permissions'
        ordering = ['code']

    def __str__(self):
        return f'{self.code} ({self.name})'


class Role(models.Model):
    """Collection of permissions. Manager/Admin can create & edit via UI."""
    name = models.CharField(max_length=128)
    description = models.TextField(blank=True)
    permissions = models.ManyToManyField(Permission, blank=True, related_name='roles', db_table='role_permissions')
    is_system = models.BooleanField(default=False, help_text='System roles cannot be deleted.')

    class Meta:
        db_table = 'roles'
        ordering = ['name']

    def __str__(self):
        return self.name


class User(AbstractUser):
    """Staff user with role. is_manager marks hotel admins/owners (expense auto-approval)."""
    email = models.EmailField(unique=True)
    role = models.ForeignKey(Role, on_delete=models.SET_NULL, null=True, blank=True, related_name='users')
    phone = models.CharField(max_length=32, blank=True)
    is_manager = models.BooleanField(default=False, help_text='Admin/owner: approves own expenses, sees all accounts.')

    class Meta:
        db_table = 'users'
        ordering = ['username']

    def __str__(self):
        return self.get_full_name() or self.username

    @property
    def is_admin_or_owner(self) -> bool:
        return self.is_superuser or self.is_manager

    def has_perm_code(self, code: str) -> bool:
        """Check if user has a permission by code (via role)."""
        if not self.role:
            return False
        return self.role.permissions.filter(code=code).exists()

    def get_all_permission_codes(self):
        """Set of permission codes for frontend."""
        if not self.role:
            return set()
        return set(self.role.permissions.values_list('code', flat=True))


class AuditLog(models.Model):
    """Who did what, when."""
    user = models.ForeignKey(User, on_delete=models.SET_NULL, null=True, related_name='audit_logs')
    action = models.CharField(max_length=64)
    model_name = models.CharField(max_length=64, blank=True)
    object_id = models.CharField(max_length=64, blank=True)
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'audit_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['user']),
            models.Index(fields=['action']),
            models.Index(fields=['created_at']),
        ]

    def __str__(self):
        return f'{self.user} - {self.action} @ {self.created_at}'


class Notification(models.Model):
    """In-app notification for staff (new booking, invoice, stock movement)."""
    KIND_BOOKING = 'booking'
    KIND_INVOICE = 'invoice'
    KIND_PAYMENT = 'payment'
    KIND_EXPENSE = 'expense'
    KIND_INVENTORY = 'inventory'
    KIND_CHOICES = [
        (KIND_BOOKING, 'Booking'),
        (KIND_INVOICE, 'Invoice'),
        (KIND_PAYMENT, 'Payment'),
        (KIND_EXPENSE, 'Expense'),
        (KIND_INVENTORY, 'Inventory'),
    ]
    kind = models.CharField(max_length=20, choices=KIND_CHOICES)
    title = models.CharField(max_length=128)
    message = models.TextField(blank=True)
    data = models.JSONField(default=dict, blank=True)
    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL, on_delete=models.CASCADE, null=True, blank=True, related_name='notifications'
    )
    is_read = models.BooleanField(default=False)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'notifications'
        ordering = ['-created_at']
        indexes = [models.Index(fields=['kind']), models.Index(fields=['is_read'])]

    def __str__(self):
        return f'{self.kind}: {self.title}'
