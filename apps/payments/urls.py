from django.urls import path
from . import views

app_name = 'payments'

urlpatterns = [
    # STK push
    # POST   /api/payments/stk/initiate/          - Initiate STK push
    # GET    /api/payments/stk/{id}/status/       - Poll status (?refresh=true)
    # POST   /api/payments/stk/{id}/finalize/     - Finalize sale
    path('stk/initiate/', views.stk_initiate, name='stk-initiate'),
    path('stk/<uuid:transaction_id>/status/', views.stk_status, name='stk-status'),
    path('stk/<uuid:transaction_id>/finalize/', views.stk_finalize, name='stk-finalize'),

    # Provider callbacks (public)
    path('mpesa/callback/', views.mpesa_callback, name='mpesa-callback'),
    path('mpesa/c2b/validation/', views.c2b_validation, name='c2b-validation'),
    path('mpesa/c2b/confirmation/', views.c2b_confirmation, name='c2b-confirmation'),

    # QR payments
    path('qr/', views.qr_create, name='qr-create'),
    path('qr/pending/', views.qr_pending, name='qr-pending'),
    path('qr/<str:qr_reference>/status/', views.qr_status, name='qr-status'),

    # Manual M-Pesa entries
    path('manual-entries/', views.manual_entry_create, name='manual-entry-create'),
    path('manual-entries/pending/', views.manual_entry_pending, name='manual-entry-pending'),
    path('manual-entries/<uuid:entry_id>/verify/', views.manual_entry_verify, name='manual-entry-verify'),
    path('manual-entries/<uuid:entry_id>/confirm/', views.manual_entry_confirm, name='manual-entry-confirm'),
]
