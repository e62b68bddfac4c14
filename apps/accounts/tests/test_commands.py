import pytest
from io import StringIO
from django.core.management import call_command
from apps.accounts.models import User, StaffRole
from apps.sales.models import Sale


@pytest.mark.django_db
class TestCreateSampleData:

    def test_creates_staff_accounts(self):
        call_command('create_sample_data', stdout=StringIO())

        admin = User.objects.get(email='admin@example.com')
        manager = User.objects.get(email='manager@example.com')
        cashier = User.objects.get(email='cashier@example.com')

        assert admin.is_superuser is True
        assert admin.check_password('admin123')
        assert manager.role == StaffRole.MANAGER
        assert manager.is_staff is True
        assert manager.can_verify_payments is True
        assert cashier.role == StaffRole.CASHIER
        assert cashier.can_verify_payments is False
        assert Sale.objects.get().cashier == cashier

    def test_running_twice_reuses_existing_data(self):
        call_command('create_sample_data', stdout=StringIO())
        call_command('create_sample_data', stdout=StringIO())

        assert User.objects.count() == 3
        assert Sale.objects.count() == 1
