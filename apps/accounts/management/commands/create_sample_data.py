"""
Management command to create sample data for trying out the till API.

Usage:
    python manage.py create_sample_data

This creates:
- 3 staff accounts (admin, manager, cashier)
- 4 product categories
- 12 products, a few of them low on stock
- 1 completed sale paid by manual M-Pesa entry
"""

from django.core.management.base import BaseCommand
from django.db import transaction
from decimal import Decimal

from apps.accounts.models import User, StaffRole
from apps.accounts.services import create_staff_user
from apps.inventory.models import Category, Product
from apps.payments.models import PendingTransaction, QRCodePayment, ManualMpesaEntry, C2BConfirmation
from apps.sales.models import Sale, PaymentMethod
from apps.sales.services import build_cart_snapshot, record_sale


class Command(BaseCommand):
    help = 'Create sample data for testing the API'

    def add_arguments(self, parser):
        parser.add_argument(
            '--clear',
            action='store_true',
            help='Clear existing data before creating new sample data',
        )

    @transaction.atomic
    def handle(self, *args, **options):
        if options['clear']:
            self.stdout.write('Clearing existing data...')
            self.clear_data()

        self.stdout.write('Creating sample data...')

        users = self.create_users()
        categories = self.create_categories()
        products = self.create_products(categories)
        self.create_sales(users, products)

        self.stdout.write(self.style.SUCCESS('Sample data created successfully!'))
        self.stdout.write('')
        self.stdout.write('Staff accounts:')
        self.stdout.write('  admin@example.com / admin123 (superuser)')
        self.stdout.write('  manager@example.com / password123 (can verify M-Pesa entries)')
        self.stdout.write('  cashier@example.com / password123')

    def clear_data(self):
        """Clear all till data from the database."""
        ManualMpesaEntry.objects.all().delete()
        C2BConfirmation.objects.all().delete()
        PendingTransaction.objects.all().delete()
        QRCodePayment.objects.all().delete()
        Sale.objects.all().delete()
        Product.objects.all().delete()
        Category.objects.all().delete()
        User.objects.filter(is_superuser=False).delete()
        User.objects.filter(email='admin@example.com').delete()

    def create_users(self):
        """Create staff accounts through the provisioning service."""
        self.stdout.write('  Creating staff...')

        staff_data = [
            ('admin@example.com', 'admin123', 'Admin User', StaffRole.ADMIN),
            ('manager@example.com', 'password123', 'Grace Manager', StaffRole.MANAGER),
            ('cashier@example.com', 'password123', 'Kevin Cashier', StaffRole.CASHIER),
        ]

        users = {}
        for email, password, name, role in staff_data:
            user = User.objects.filter(email=email).first()
            if user is None:
                user = create_staff_user(
                    email=email,
                    password=password,
                    display_name=name,
                    role=role,
                )
            if role == StaffRole.ADMIN and not user.is_superuser:
                user.is_superuser = True
                user.save(update_fields=['is_superuser'])
            users[role] = user

        return users

    def create_categories(self):
        self.stdout.write('  Creating categories...')

        categories = {}
        for name, description in [
            ('Groceries', 'Flour, rice, sugar and other dry goods'),
            ('Beverages', 'Sodas, juices and water'),
            ('Household', 'Cleaning and household supplies'),
            ('Snacks', 'Biscuits, crisps and sweets'),
        ]:
            category, _ = Category.objects.get_or_create(
                name=name,
                defaults={'description': description}
            )
            categories[name] = category

        return categories

    def create_products(self, categories):
        """Create products; the last two start below their minimum stock."""
        self.stdout.write('  Creating products...')

        products_data = [
            ('Maize Flour 2kg', 'GRC-FLOUR-2KG', 'Groceries', '250.00', '210.00', 40),
            ('Sugar 1kg', 'GRC-SUGAR-1KG', 'Groceries', '180.00', '150.00', 35),
            ('Rice 2kg', 'GRC-RICE-2KG', 'Groceries', '320.00', '270.00', 25),
            ('Cooking Oil 1L', 'GRC-OIL-1L', 'Groceries', '390.00', '340.00', 20),
            ('Soda 500ml', 'BEV-SODA-500', 'Beverages', '80.00', '55.00', 96),
            ('Mineral Water 1L', 'BEV-WATER-1L', 'Beverages', '70.00', '45.00', 60),
            ('Mango Juice 1L', 'BEV-JUICE-1L', 'Beverages', '220.00', '175.00', 18),
            ('Bar Soap', 'HSE-SOAP-BAR', 'Household', '120.00', '90.00', 30),
            ('Toilet Paper 4 pack', 'HSE-TP-4', 'Household', '260.00', '210.00', 15),
            ('Biscuits 200g', 'SNK-BISC-200', 'Snacks', '60.00', '42.00', 50),
            ('Crisps 100g', 'SNK-CRSP-100', 'Snacks', '100.00', '70.00', 3),
            ('Chocolate Bar', 'SNK-CHOC-BAR', 'Snacks', '150.00', '110.00', 2),
        ]

        products = {}
        for name, sku, category, selling, buying, stock in products_data:
            product, _ = Product.objects.get_or_create(
                sku=sku,
                defaults={
                    'name': name,
                    'category': categories[category],
                    'selling_price': Decimal(selling),
                    'buying_price': Decimal(buying),
                    'stock_quantity': stock,
                    'min_stock_level': 5,
                }
            )
            products[sku] = product

        return products

    def create_sales(self, users, products):
        """Record a manual-entry sale so the sales list is not empty."""
        self.stdout.write('  Creating sales...')

        if Sale.objects.exists():
            return

        cart, total = build_cart_snapshot(items=[
            {'product_id': products['GRC-FLOUR-2KG'].id, 'quantity': 1},
            {'product_id': products['BEV-SODA-500'].id, 'quantity': 2},
        ])
        record_sale(
            cart=cart,
            payment_method=PaymentMethod.MPESA_MANUAL,
            amount_paid=total,
            cashier=users[StaffRole.CASHIER],
            customer_name='Walk-in customer',
            mpesa_receipt_number='SMP1234XYZ',
        )
