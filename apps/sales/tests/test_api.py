import pytest
from django.urls import reverse
from rest_framework import status


@pytest.mark.django_db
class TestSaleApi:
    """Tests for /api/sales/"""

    def test_list_sales(self, authenticated_client, sale):
        url = reverse('sales:sale-list')
        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 1
        assert response.data['results'][0]['sale_number'] == sale.sale_number
        assert response.data['results'][0]['item_count'] == 1

    def test_filter_by_receipt(self, authenticated_client, sale):
        url = reverse('sales:sale-list')
        response = authenticated_client.get(url, {'receipt': 'qwe123rty4'})

        assert response.data['count'] == 1

    def test_invalid_date_range(self, authenticated_client, sale):
        url = reverse('sales:sale-list')
        response = authenticated_client.get(url, {'date_from': '2025-02-01', 'date_to': '2025-01-01'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_retrieve_sale_with_items(self, authenticated_client, sale):
        url = reverse('sales:sale-detail', kwargs={'pk': sale.id})
        response = authenticated_client.get(url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['items'][0]['quantity'] == 2
        assert response.data['payment_method'] == 'mpesa_stk'

    def test_sales_cannot_be_created_via_api(self, authenticated_client):
        url = reverse('sales:sale-list')
        response = authenticated_client.post(url, {}, format='json')

        assert response.status_code == status.HTTP_405_METHOD_NOT_ALLOWED

    def test_requires_authentication(self, api_client):
        url = reverse('sales:sale-list')
        response = api_client.get(url)

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
