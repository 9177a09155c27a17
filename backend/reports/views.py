"""
Reports: Dashboard APIs, graph-ready endpoints, Excel/CSV export, tax report.
Revenue figures come from the ledger (main account, audit rows excluded).
"""
import csv
import io
from datetime import timedelta

import openpyxl
from openpyxl.styles import Font
from django.conf import settings
from django.db.models import Count, Q, Sum
from django.db.models.functions import TruncDate
from django.http import HttpResponse
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from finance.models import Expense, Transaction
from finance.tax import ZERO
from hotel.models import Booking, Invoice, Room


def _require_reports(user):
    if not user.is_superuser and not user.has_perm_code('view_reports'):
        raise PermissionDenied('You do not have permission to view reports.')


def _ledger(from_date=None, to_date=None):
    qs = Transaction.objects.filter(is_modification=False, account__is_main_account=True)
    if from_date:
        qs = qs.filter(created_at__date__gte=from_date)
    if to_date:
        qs = qs.filter(created_at__date__lte=to_date)
    return qs


def _net_revenue(qs):
    totals = qs.aggregate(
        revenue=Sum('amount', filter=Q(
            transaction_type=Transaction.TYPE_CREDIT, category__in=Transaction.REVENUE_CATEGORIES,
        ), default=ZERO),
        refunds=Sum('amount', filter=Q(
            transaction_type=Transaction.TYPE_DEBIT, category=Transaction.REFUNDS,
        ), default=ZERO),
    )
    return totals['revenue'] - totals['refunds']


def _approved_expenses(from_date=None):
    qs = Expense.objects.filter(status=Expense.STATUS_APPROVED)
    if from_date:
        qs = qs.filter(expense_date__gte=from_date)
    return qs.aggregate(s=Sum('amount', default=ZERO))['s']


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def dashboard(request):
    """Manager dashboard: revenue, expenses, net profit, occupancy, booking counts."""
    _require_reports(request.user)
    today = timezone.localdate()
    month_start = today.replace(day=1)

    revenue_total = _net_revenue(_ledger())
    revenue_today = _net_revenue(_ledger(from_date=today, to_date=today))
    revenue_month = _net_revenue(_ledger(from_date=month_start))
    expenses_total = _approved_expenses()
    expenses_month = _approved_expenses(from_date=month_start)

    rooms = Room.objects.aggregate(
        total=Count('id'),
        occupied=Count('id', filter=Q(status=Room.STATUS_OCCUPIED)),
        reserved=Count('id', filter=Q(status=Room.STATUS_RESERVED)),
        available=Count('id', filter=Q(status=Room.STATUS_AVAILABLE)),
    )
    occupancy = round(100 * rooms['occupied'] / rooms['total'], 1) if rooms['total'] else 0.0
    bookings = dict(Booking.objects.values_list('status').annotate(n=Count('id')).order_by())
    payment_statuses = dict(Booking.objects.values_list('payment_status').annotate(n=Count('id')).order_by())
    outstanding = Invoice.objects.exclude(status=Invoice.STATUS_PAID).aggregate(
        s=Sum('total_amount', default=ZERO)
    )['s']

    return Response({
        'currency': settings.CURRENCY,
        'revenue_total': float(revenue_total),
        'revenue_today': float(revenue_today),
        'revenue_this_month': float(revenue_month),
        'expenses_total': float(expenses_total),
        'expenses_this_month': float(expenses_month),
        'net_profit': float(revenue_total - expenses_total),
        'net_profit_this_month': float(revenue_month - expenses_month),
        'outstanding_invoices': float(outstanding),
        'rooms': rooms,
        'occupancy_rate': occupancy,
        'bookings_by_status': bookings,
        'bookings_by_payment_status': payment_statuses,
        'arrivals_today': Booking.objects.filter(
            check_in_date=today, status=Booking.STATUS_CONFIRMED
        ).count(),
        'departures_today': Booking.objects.filter(
            check_out_date=today, status=Booking.STATUS_CHECKED_IN
        ).count(),
    })


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def graph_revenue_daily(request):
    """Graph-ready: daily net revenue for the last 30 days."""
    _require_reports(request.user)
    today = timezone.localdate()
    start = today - timedelta(days=30)
    rows = (
        _ledger(from_date=start)
        .annotate(day=TruncDate('created_at'))
        .values('day')
        .order_by('day')
        .annotate(
            revenue=Sum('amount', filter=Q(
                transaction_type=Transaction.TYPE_CREDIT, category__in=Transaction.REVENUE_CATEGORIES,
            ), default=ZERO),
            refunds=Sum('amount', filter=Q(
                transaction_type=Transaction.TYPE_DEBIT, category=Transaction.REFUNDS,
            ), default=ZERO),
        )
    )
    per_day = {r['day']: r['revenue'] - r['refunds'] for r in rows}
    data = []
    for i in range(30, -1, -1):
        d = today - timedelta(days=i)
        data.append({'date': d.isoformat(), 'total': float(per_day.get(d, ZERO))})
    return Response({'data': data})


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_excel(request):
    """Export revenue by category, expenses and invoices as Excel."""
    _require_reports(request.user)
    bold = Font(bold=True)
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = 'Summary'
    ws.append(['Report', f'{settings.HOTEL_NAME} - Revenue & Expenses'])
    ws.append(['Generated', timezone.now().strftime('%Y-%m-%d %H:%M')])
    ws.append([])
    ws.append(['Revenue category', 'Amount'])
    ws.cell(row=ws.max_row, column=1).font = bold
    by_category = (
        _ledger().filter(transaction_type=Transaction.TYPE_CREDIT, category__in=Transaction.REVENUE_CATEGORIES)
        .values_list('category').annotate(s=Sum('amount')).order_by('category')
    )
    for category, amount in by_category:
        ws.append([category, float(amount)])
    ws.append(['Net revenue', float(_net_revenue(_ledger()))])
    ws.append([])
    ws.append(['Approved expenses', float(_approved_expenses())])

    inv = wb.create_sheet('Invoices')
    inv.append(['Invoice', 'Booking', 'Guest', 'Subtotal', 'Discount', 'Tax', 'Total', 'Status', 'Issued'])
    for cell in inv[1]:
        cell.font = bold
    for i in Invoice.objects.select_related('booking').order_by('-issued_date')[:2000]:
        inv.append([
            i.invoice_number, i.booking.booking_reference, i.booking.guest_name, float(i.subtotal),
            float(i.discount_amount), float(i.tax_amount), float(i.total_amount), i.status,
            i.issued_date.strftime('%Y-%m-%d'),
        ])

    buf = io.BytesIO()
    wb.save(buf)
    buf.seek(0)
    response = HttpResponse(buf.read(), content_type='application/vnd.openxmlformats-officedocument.spreadsheetml.sheet')
    response['Content-Disposition'] = 'attachment; filename=hotel_report.xlsx'
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def export_csv(request):
    """Export ledger transactions as CSV."""
    _require_reports(request.user)
    qs = Transaction.objects.select_related('account').order_by('-created_at')[:2000]
    response = HttpResponse(content_type='text/csv')
    response['Content-Disposition'] = 'attachment; filename=transactions.csv'
    w = csv.writer(response)
    w.writerow(['ID', 'Account', 'Type', 'Category', 'Amount', 'Reference', 'Audit', 'Description', 'Created At'])
    for t in qs:
        reference = f'{t.reference_type}:{t.reference_id}' if t.reference_type else ''
        w.writerow([
            t.id, t.account.account_name, t.transaction_type, t.category, t.amount, reference,
            'yes' if t.is_modification else '', t.description, t.created_at.isoformat(),
        ])
    return response


@api_view(['GET'])
@permission_classes([IsAuthenticated])
def tax_report(request):
    """Tax collected on invoices and bookings, optionally limited by ?from=&to= (issued date)."""
    _require_reports(request.user)
    invoices = Invoice.objects.all()
    bookings = Booking.objects.exclude(status=Booking.STATUS_CANCELLED)
    from_date = request.query_params.get('from')
    to_date = request.query_params.get('to')
    if from_date:
        invoices = invoices.filter(issued_date__date__gte=from_date)
        bookings = bookings.filter(check_in_date__gte=from_date)
    if to_date:
        invoices = invoices.filter(issued_date__date__lte=to_date)
        bookings = bookings.filter(check_in_date__lte=to_date)
    return Response({
        'invoices': invoices.aggregate(
            count=Count('id'),
            subtotal=Sum('subtotal', default=ZERO),
            discount=Sum('discount_amount', default=ZERO),
            tax=Sum('tax_amount', default=ZERO),
            total=Sum('total_amount', default=ZERO),
        ),
        'bookings': bookings.aggregate(
            count=Count('id'),
            base=Sum('base_amount', default=ZERO),
            gst=Sum('gst_amount', default=ZERO),
            service_tax=Sum('service_tax_amount', default=ZERO),
            other_tax=Sum('other_tax_amount', default=ZERO),
            total_tax=Sum('total_tax_amount', default=ZERO),
        ),
    })
