import uuid
from decimal import Decimal
from django.conf import settings
from django.core.validators import MinValueValidator
from django.db import migrations, models
import django.db.models.deletion
import django.utils.timezone


STATUS_CHOICES = [
    ('created', 'Created'),
    ('awaiting_confirmation', 'Awaiting Confirmation'),
    ('confirmed', 'Confirmed'),
    ('failed', 'Failed'),
    ('expired', 'Expired'),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ('sales', '0001_initial'),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name='PendingTransaction',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('phone_number', models.CharField(blank=True, max_length=20)),
                ('customer_name', models.CharField(blank=True, max_length=100)),
                ('cart', models.JSONField(blank=True, default=list)),
                ('status', models.CharField(choices=STATUS_CHOICES, default='created', max_length=30)),
                ('mpesa_receipt_number', models.CharField(blank=True, db_index=True, max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('expires_at', models.DateTimeField()),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('session_id', models.CharField(blank=True, max_length=100)),
                ('checkout_request_id', models.CharField(blank=True, max_length=100, null=True, unique=True)),
                ('merchant_request_id', models.CharField(blank=True, max_length=100)),
                ('result_code', models.CharField(blank=True, max_length=20)),
                ('result_desc', models.CharField(blank=True, max_length=255)),
                ('raw_callback', models.JSONField(blank=True, null=True)),
                ('initiated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='pendingtransaction_initiated', to=settings.AUTH_USER_MODEL)),
                ('sale', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='pendingtransaction', to='sales.sale')),
            ],
            options={
                'db_table': 'pending_transactions',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'expires_at'], name='pending_tra_status_6b2f1a_idx'),
                    models.Index(fields=['created_at'], name='pending_tra_created_0e9c4d_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='QRCodePayment',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('phone_number', models.CharField(blank=True, max_length=20)),
                ('customer_name', models.CharField(blank=True, max_length=100)),
                ('cart', models.JSONField(blank=True, default=list)),
                ('status', models.CharField(choices=STATUS_CHOICES, default='created', max_length=30)),
                ('mpesa_receipt_number', models.CharField(blank=True, db_index=True, max_length=50)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('expires_at', models.DateTimeField()),
                ('confirmed_at', models.DateTimeField(blank=True, null=True)),
                ('qr_reference', models.CharField(max_length=30, unique=True)),
                ('till_number', models.CharField(max_length=20)),
                ('description', models.CharField(blank=True, max_length=255)),
                ('transaction_code', models.CharField(blank=True, max_length=20)),
                ('initiated_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='qrcodepayment_initiated', to=settings.AUTH_USER_MODEL)),
                ('sale', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='qrcodepayment', to='sales.sale')),
            ],
            options={
                'db_table': 'qr_code_payments',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status', 'expires_at'], name='qr_code_pay_status_4d8e27_idx'),
                    models.Index(fields=['amount'], name='qr_code_pay_amount_91a3c5_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='ManualMpesaEntry',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('raw_message', models.TextField(blank=True)),
                ('transaction_code', models.CharField(max_length=20, unique=True)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12, validators=[MinValueValidator(Decimal('0.01'))])),
                ('sender_phone', models.CharField(blank=True, max_length=20)),
                ('sender_name', models.CharField(blank=True, max_length=100)),
                ('transaction_date', models.DateField(blank=True, null=True)),
                ('till_number', models.CharField(blank=True, max_length=20)),
                ('status', models.CharField(choices=[('pending', 'Pending'), ('verified', 'Verified'), ('invalid', 'Invalid'), ('linked', 'Linked')], default='pending', max_length=20)),
                ('verification_notes', models.TextField(blank=True)),
                ('verified_at', models.DateTimeField(blank=True, null=True)),
                ('created_at', models.DateTimeField(auto_now_add=True)),
                ('updated_at', models.DateTimeField(auto_now=True)),
                ('entered_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='manual_entries', to=settings.AUTH_USER_MODEL)),
                ('verified_by', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='verified_manual_entries', to=settings.AUTH_USER_MODEL)),
                ('pending_transaction', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='manual_entries', to='payments.pendingtransaction')),
                ('qr_payment', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='manual_entries', to='payments.qrcodepayment')),
                ('sale', models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='manual_entries', to='sales.sale')),
            ],
            options={
                'db_table': 'manual_mpesa_entries',
                'verbose_name_plural': 'manual M-Pesa entries',
                'ordering': ['-created_at'],
                'indexes': [
                    models.Index(fields=['status'], name='manual_mpes_status_2c71b0_idx'),
                ],
            },
        ),
        migrations.CreateModel(
            name='C2BConfirmation',
            fields=[
                ('id', models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ('transaction_code', models.CharField(max_length=20, unique=True)),
                ('till_number', models.CharField(max_length=20)),
                ('amount', models.DecimalField(decimal_places=2, max_digits=12)),
                ('phone_number', models.CharField(blank=True, max_length=20)),
                ('customer_name', models.CharField(blank=True, max_length=150)),
                ('bill_ref_number', models.CharField(blank=True, max_length=50)),
                ('received_at', models.DateTimeField(default=django.utils.timezone.now)),
                ('raw_payload', models.JSONField(blank=True, default=dict)),
                ('is_used', models.BooleanField(default=False)),
                ('used_at', models.DateTimeField(blank=True, null=True)),
                ('used_by_qr', models.OneToOneField(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name='c2b_confirmation', to='payments.qrcodepayment')),
            ],
            options={
                'db_table': 'c2b_confirmations',
                'ordering': ['-received_at'],
                'indexes': [
                    models.Index(fields=['is_used', 'amount'], name='c2b_confirm_is_used_7f3a92_idx'),
                    models.Index(fields=['received_at'], name='c2b_confirm_receive_5b0d16_idx'),
                ],
            },
        ),
    ]
