"""
Hotel backend - API URLs
"""
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenRefreshView

from core.views import (
    CustomTokenObtainPairView, me,
    PermissionList, RoleListCreate, RoleDetail,
    UserList, UserDetail, AuditLogList, NotificationList, NotificationDetail,
)
from hotel import views as hotel_views
from finance import views as finance_views
from inventory import views as inventory_views
from reports import views as reports_views

urlpatterns = [
    path('admin/', admin.site.urls),
    # Auth
    path('api/auth/login/', CustomTokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/auth/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/auth/me/', me, name='me'),
    # RBAC
    path('api/permissions/', PermissionList.as_view(), name='permission-list'),
    path('api/roles/', RoleListCreate.as_view(), name='role-list'),
    path('api/roles/<int:pk>/', RoleDetail.as_view(), name='role-detail'),
    path('api/users/', UserList.as_view(), name='user-list'),
    path('api/users/<int:pk>/', UserDetail.as_view(), name='user-detail'),
    path('api/audit-logs/', AuditLogList.as_view(), name='audit-log-list'),
    path('api/notifications/', NotificationList.as_view(), name='notification-list'),
    path('api/notifications/<int:pk>/', NotificationDetail.as_view(), name='notification-detail'),
    # Hotel
    path('api/room-types/', hotel_views.RoomTypeListCreate.as_view(), name='room-type-list'),
    path('api/room-types/<int:pk>/', hotel_views.RoomTypeDetail.as_view(), name='room-type-detail'),
    path('api/rooms/', hotel_views.RoomListCreate.as_view(), name='room-list'),
    path('api/rooms/available/', hotel_views.available_rooms, name='room-available'),
    path('api/rooms/<int:pk>/', hotel_views.RoomDetail.as_view(), name='room-detail'),
    path('api/bookings/', hotel_views.BookingListCreate.as_view(), name='booking-list'),
    path('api/bookings/<int:pk>/', hotel_views.BookingDetail.as_view(), name='booking-detail'),
    path('api/bookings/<int:pk>/bill-items/', hotel_views.BillItemListCreate.as_view(), name='bill-item-list'),
    path(
        'api/bookings/<int:pk>/bill-items/<int:item_pk>/', hotel_views.BillItemDetail.as_view(), name='bill-item-detail'
    ),
    path('api/bookings/<int:pk>/split-payments/', hotel_views.SplitPaymentView.as_view(), name='split-payments'),
    path('api/invoices/', hotel_views.InvoiceListCreate.as_view(), name='invoice-list'),
    path('api/invoices/<int:pk>/', hotel_views.InvoiceDetail.as_view(), name='invoice-detail'),
    path('api/payments/', hotel_views.PaymentListCreate.as_view(), name='payment-list'),
    path('api/payments/<int:pk>/', hotel_views.PaymentDetail.as_view(), name='payment-detail'),
    # Finance
    path('api/tax-settings/', finance_views.TaxSettingsDetail.as_view(), name='tax-settings'),
    path('api/taxes/', finance_views.TaxListCreate.as_view(), name='tax-list'),
    path('api/taxes/<int:pk>/', finance_views.TaxDetail.as_view(), name='tax-detail'),
    path('api/calculate-taxes/', finance_views.calculate_taxes_view, name='calculate-taxes'),
    path('api/accounts/', finance_views.AccountsView.as_view(), name='accounts'),
    path('api/accounts/<int:pk>/', finance_views.BankAccountDetail.as_view(), name='account-detail'),
    path('api/ledger/postings/', finance_views.LedgerPostingList.as_view(), name='ledger-posting-list'),
    path('api/ledger/postings/retry/', finance_views.retry_ledger_postings, name='ledger-posting-retry'),
    path('api/ledger/reconcile/', finance_views.reconcile_ledger, name='ledger-reconcile'),
    path('api/expense-types/', finance_views.ExpenseTypeListCreate.as_view(), name='expense-type-list'),
    path('api/expense-types/<int:pk>/', finance_views.ExpenseTypeDetail.as_view(), name='expense-type-detail'),
    path('api/expenses/', finance_views.ExpenseListCreate.as_view(), name='expense-list'),
    path('api/expenses/<int:pk>/approve/', finance_views.expense_decision, {'decision': 'approve'},
         name='expense-approve'),
    path('api/expenses/<int:pk>/reject/', finance_views.expense_decision, {'decision': 'reject'},
         name='expense-reject'),
    # Inventory
    path('api/inventory/categories/', inventory_views.CategoryListCreate.as_view(), name='inventory-category-list'),
    path('api/inventory/categories/<int:pk>/', inventory_views.CategoryDetail.as_view(),
         name='inventory-category-detail'),
    path('api/inventory/items/', inventory_views.ItemListCreate.as_view(), name='inventory-item-list'),
    path('api/inventory/items/<int:pk>/', inventory_views.ItemDetail.as_view(), name='inventory-item-detail'),
    path('api/inventory/transactions/', inventory_views.TransactionListCreate.as_view(),
         name='inventory-transaction-list'),
    path('api/inventory/alerts/', inventory_views.AlertList.as_view(), name='inventory-alert-list'),
    path('api/inventory/alerts/<int:pk>/', inventory_views.AlertDetail.as_view(), name='inventory-alert-detail'),
    # Reports
    path('api/reports/dashboard/', reports_views.dashboard, name='reports-dashboard'),
    path('api/reports/graph-revenue-daily/', reports_views.graph_revenue_daily, name='reports-graph-revenue'),
    path('api/reports/export/excel/', reports_views.export_excel, name='reports-export-excel'),
    path('api/reports/export/csv/', reports_views.export_csv, name='reports-export-csv'),
    path('api/reports/tax/', reports_views.tax_report, name='reports-tax'),
]
