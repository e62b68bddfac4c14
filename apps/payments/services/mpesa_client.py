"""
Safaricom Daraja API client.

Wraps the three calls the till needs: the OAuth client-credentials
token, STK push and STK push query. The access token is kept in Django's
cache until shortly before it expires.
"""

import base64
import logging
from decimal import Decimal, ROUND_HALF_UP

import requests
from django.conf import settings
from django.core.cache import cache
from django.utils import timezone

from .exceptions import MpesaProviderError

logger = logging.getLogger(__name__)

SANDBOX_URL = 'https://sandbox.safaricom.co.ke'
PRODUCTION_URL = 'https://api.safaricom.co.ke'

# Refresh the cached token this many seconds before the provider expires it
TOKEN_EXPIRY_MARGIN = 60


class MpesaClient:
    """Thin requests-based client for the Daraja REST API."""

    def __init__(
        self,
        *,
        environment,
        consumer_key,
        consumer_secret,
        shortcode,
        passkey,
        callback_url,
        transaction_type='CustomerPayBillOnline',
        timeout=30,
        session=None
    ):
        self.environment = environment
        self.consumer_key = consumer_key
        self.consumer_secret = consumer_secret
        self.shortcode = str(shortcode)
        self.passkey = passkey
        self.callback_url = callback_url
        self.transaction_type = transaction_type
        self.timeout = timeout
        self.session = session or requests.Session()

        self.base_url = PRODUCTION_URL if environment == 'production' else SANDBOX_URL

    @classmethod
    def from_settings(cls):
        return cls(
            environment=settings.MPESA_ENVIRONMENT,
            consumer_key=settings.MPESA_CONSUMER_KEY,
            consumer_secret=settings.MPESA_CONSUMER_SECRET,
            shortcode=settings.MPESA_SHORTCODE,
            passkey=settings.MPESA_PASSKEY,
            callback_url=settings.MPESA_CALLBACK_URL,
            transaction_type=getattr(settings, 'MPESA_TRANSACTION_TYPE', 'CustomerPayBillOnline'),
            timeout=settings.MPESA_REQUEST_TIMEOUT,
        )

    @property
    def token_cache_key(self):
        return f"mpesa:access_token:{self.environment}:{self.shortcode}"

    def get_access_token(self, force_refresh=False):
        """
        Return a bearer token, fetching a new one when the cache is empty.

        Raises:
            MpesaProviderError: If credentials are missing or the OAuth call fails
        """
        if not force_refresh:
            token = cache.get(self.token_cache_key)
            if token:
                return token

        if not self.consumer_key or not self.consumer_secret:
            raise MpesaProviderError('M-Pesa consumer key and secret are not configured.')

        url = f"{self.base_url}/oauth/v1/generate?grant_type=client_credentials"
        try:
            resp = self.session.get(
                url,
                auth=(self.consumer_key, self.consumer_secret),
                timeout=self.timeout
            )
            resp.raise_for_status()
            data = resp.json()
        except (requests.RequestException, ValueError) as e:
            logger.error("M-Pesa token request failed: %s", e)
            raise MpesaProviderError(f"Could not obtain M-Pesa access token: {e}")

        token = data.get('access_token')
        if not token:
            raise MpesaProviderError('M-Pesa token response did not contain an access token.')

        try:
            expires_in = int(data.get('expires_in', 3599))
        except (TypeError, ValueError):
            expires_in = 3599
        cache.set(self.token_cache_key, token, max(expires_in - TOKEN_EXPIRY_MARGIN, 1))
        logger.debug("Fetched new M-Pesa access token valid for %s seconds", expires_in)
        return token

    @staticmethod
    def timestamp():
        return timezone.localtime().strftime('%Y%m%d%H%M%S')

    def password(self, timestamp):
        raw = f"{self.shortcode}{self.passkey}{timestamp}".encode('utf-8')
        return base64.b64encode(raw).decode('utf-8')

    @staticmethod
    def whole_amount(amount):
        """Daraja only accepts whole shillings."""
        return int(Decimal(str(amount)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))

    def _post(self, path, payload):
        token = self.get_access_token()
        url = f"{self.base_url}{path}"
        headers = {'Authorization': f"Bearer {token}", 'Content-Type': 'application/json'}

        try:
            resp = self.session.post(url, json=payload, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error("M-Pesa request to %s failed: %s", path, e)
            raise MpesaProviderError(f"M-Pesa request failed: {e}")

        # Error payloads come back as JSON with errorCode/errorMessage
        try:
            data = resp.json()
        except ValueError:
            logger.error("M-Pesa returned non-JSON response from %s (HTTP %s)", path, resp.status_code)
            raise MpesaProviderError(f"M-Pesa returned HTTP {resp.status_code}.")
        if not isinstance(data, dict):
            logger.error("M-Pesa returned a non-object JSON body from %s (HTTP %s)", path, resp.status_code)
            raise MpesaProviderError(f"M-Pesa returned an unexpected response (HTTP {resp.status_code}).")

        if resp.status_code == 401:
            cache.delete(self.token_cache_key)
        return resp.status_code, data

    def stk_push(self, *, phone_number, amount, account_reference, transaction_desc):
        """
        Send an STK push prompt to the payer's phone.

        Returns:
            dict: Provider response with MerchantRequestID and CheckoutRequestID

        Raises:
            MpesaProviderError: On network errors, error payloads or a
                non-zero ResponseCode
        """
        timestamp = self.timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': self.password(timestamp),
            'Timestamp': timestamp,
            'TransactionType': self.transaction_type,
            'Amount': self.whole_amount(amount),
            'PartyA': phone_number,
            'PartyB': self.shortcode,
            'PhoneNumber': phone_number,
            'CallBackURL': self.callback_url,
            'AccountReference': (account_reference or '')[:12],
            'TransactionDesc': (transaction_desc or '')[:13],
        }

        status_code, data = self._post('/mpesa/stkpush/v1/processrequest', payload)

        if 'errorCode' in data:
            logger.warning(
                "STK push rejected (HTTP %s): %s %s",
                status_code, data.get('errorCode'), data.get('errorMessage')
            )
            raise MpesaProviderError(data.get('errorMessage') or 'STK push rejected.')

        if str(data.get('ResponseCode')) != '0' or not data.get('CheckoutRequestID'):
            logger.warning("STK push not accepted: %s", data.get('ResponseDescription'))
            raise MpesaProviderError(data.get('ResponseDescription') or 'STK push not accepted.')

        return data

    def stk_query(self, *, checkout_request_id):
        """
        Ask the provider for the outcome of an STK push.

        Returns the raw response. While the payer has not answered the
        provider replies with an ``errorCode`` payload; callers treat that
        as "still pending".

        Raises:
            MpesaProviderError: On network errors or non-JSON responses
        """
        timestamp = self.timestamp()
        payload = {
            'BusinessShortCode': self.shortcode,
            'Password': self.password(timestamp),
            'Timestamp': timestamp,
            'CheckoutRequestID': checkout_request_id,
        }
        _, data = self._post('/mpesa/stkpushquery/v1/query', payload)
        return data


def get_mpesa_client():
    return MpesaClient.from_settings()
